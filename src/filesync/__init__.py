"""filesync: folder synchronization over a framed TCP protocol.

The package keeps the layers apart:
- frame codec (bytes <-> frames) with no knowledge of files or sockets
- incoming file writer and outbound file sender (frames <-> disk)
- sync engine state machine, driven by a blocking reader loop and one outbound worker
"""

__all__ = []
