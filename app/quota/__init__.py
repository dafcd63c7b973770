"""
Quota module - Per-plan hourly and monthly request limits backed by Redis.
"""
