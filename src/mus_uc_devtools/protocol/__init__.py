"""Protocol layer: message framing, command builders, and response parsing."""

from .framing import NEED_MORE_DATA, FrameDecoder, decode_next, encode
from .commands import Command, CommandName, Context, build_request
from .parser import Handshake, JSONValue, Response, map_result, parse_response
