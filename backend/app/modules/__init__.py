"""Application modules.

- merge: POST /merge-videos pipeline
- retention: daily sweep of expired artifacts
"""
