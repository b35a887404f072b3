"""
The wire protocol: encodings, envelopes, list splitting, stream framing.

Nothing here does any I/O except for the frame readers, which only read
from already opened streams. All the HTTP traffic is in the clients.
"""
