"""clipstitch — trim, reframe, and stitch short clips into one video.

Import clips, trim each one (or drop a fixed-length outro from its tail),
rescale everything to a shared aspect preset, and concatenate the result
into a single mp4 with ffmpeg.
"""
