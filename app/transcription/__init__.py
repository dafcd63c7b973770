"""
Transcription module - Audio to text through the generative model.
"""
