"""Decoding of captured hex messages given on the command line or in a file."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from os import PathLike
from pathlib import Path

from .decoder import new_from_bytes
from .message import PhevMessage
from .raw import SecurityKey

logger = logging.getLogger(__name__)


def _report(messages: list[PhevMessage]) -> list[PhevMessage]:
    for message in messages:
        logger.debug("%s", message.original.hex())
        logger.info("%s", message.short_form())
    return messages


def decode_hex_args(args: Iterable[str]) -> list[PhevMessage]:
    """Decode each hex string in turn with one shared session key.

    Arguments that are not valid hex are logged and skipped.
    """
    key = SecurityKey()
    messages: list[PhevMessage] = []
    for arg in args:
        try:
            data = bytes.fromhex(arg)
        except ValueError as err:
            logger.error("Not a valid hex string [%s]: %s", arg, err)
            continue
        messages.extend(_report(new_from_bytes(data, key)))
    return messages


def decode_file(path: str | PathLike[str]) -> list[PhevMessage]:
    """Decode the hex dump in a file; line breaks are ignored.

    Raises ValueError if the content is not valid hex.
    """
    text = Path(path).read_text().replace("\n", "")
    data = bytes.fromhex(text)
    return _report(new_from_bytes(data, SecurityKey()))