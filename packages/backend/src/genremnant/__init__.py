"""GenRemnant: community content-sharing backend.

Users register, contributors submit sermons and daily motivations,
admins moderate, and everyone comments, reacts and befriends each other.
Reaction and comment activity is pushed to browsers over a WebSocket.
"""

__version__ = "0.1.0"
