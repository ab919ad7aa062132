"""Room file relay for FlowShare.

Uploads are written into the room's namespace under a stored name of the
form ``<timestamp>-<sanitized original name>``. The directory itself is the
index: listing enumerates it and download serves a stored name verbatim.

Clients learn about new files by polling GET /files/{roomId}; there is no
push channel. An acknowledged upload is visible to the next listing call.
"""
