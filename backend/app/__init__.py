"""FFmpeg Video Merger backend.

Merges remotely hosted videos into one file and delivers it to object
storage, picking transforms and upload strategy from the output size.

Modules:
    - core: Configuration, logging, metrics, tracing, storage, Celery setup
    - modules.merge: Download, concatenation, planning and delivery
    - modules.retention: Scheduled deletion of expired merged videos
"""

__version__ = "2.4.0"
