"""Pitch deck learning layer: context tracking, pattern learning and personalized recommendations."""
