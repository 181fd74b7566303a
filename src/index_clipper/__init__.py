"""Index Clipper - split long recordings into named clips.

Takes a source video plus a free-form index of timestamp ranges and:
1. Parses the index into ordered segments (with titles and flag annotations)
2. Cuts one stream-copied clip per segment with ffmpeg
3. Packages clips for one or many jobs into zip archives
"""

__version__ = "0.1.0"
