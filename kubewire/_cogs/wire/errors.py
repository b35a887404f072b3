"""
Errors of the wire protocol: malformed data in either direction.

The decoding errors always name the stage at which the data turned out
to be malformed, so that an envelope's corruption can be distinguished
from e.g. a mismatching message schema or a cut-off stream.
"""

# The stages of decoding, as reported in `DecodeError.stage`.
MAGIC = 'magic'          # the 4-byte prefix of the binary envelope.
ENVELOPE = 'envelope'    # the container message of the binary envelope.
MESSAGE = 'message'      # the inner message of a specific kind.
JSON = 'json'            # the JSON syntax or structure.
LIST = 'list'            # the collection's structure or its items.
FRAME = 'frame'          # the framing of a watch-stream.
EVENT = 'event'          # the structure of a watch-event.


class DecodeError(Exception):
    """ Raised when the received data cannot be decoded. """

    def __init__(self, message: str, *, stage: str) -> None:
        super().__init__(f"{message} (stage: {stage})")
        self.stage = stage


class EncodeError(Exception):
    """ Raised when an object cannot be encoded for sending. """
