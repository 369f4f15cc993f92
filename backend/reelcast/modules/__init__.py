"""Application modules.

This package contains the feature modules of the video delivery backend:
- transcoding: Rendition ladder encoding, thumbnails, legacy migration
- video: Video records and rendition URL lookup
- playback: Network classification and adaptive quality control
"""
