"""Application modules.

- transcoding: HLS conversion pipeline, status tracking, /objects API
"""
