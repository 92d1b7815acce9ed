"""
RANK payload decoder for Lotus data outputs
Decodes OP_RETURN outputs carrying RANK sentiment votes into readable records
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from lotus_script import OP_0, OP_1, OP_16, OP_RETURN, Script, ScriptChunk, ScriptError

logger = logging.getLogger(__name__)


RANK_LOKAD_PREFIX = b"RANK"


# ==================== DATA MODELS ====================


@dataclass(frozen=True)
class PlatformParameters:
    """Encoding of profile and post identifiers on a platform"""

    name: str
    profile_id_size: int
    post_id_size: int
    profile_id_text: bool
    post_id_numeric: bool


@dataclass
class RankPayload:
    """Decoded RANK vote"""

    sentiment: str
    platform: str
    profile_id: str
    post_id: Optional[str] = None
    protocol: str = "RANK"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "protocol": self.protocol,
            "sentiment": self.sentiment,
            "platform": self.platform,
            "profileId": self.profile_id,
        }
        if self.post_id is not None:
            result["postId"] = self.post_id
        return result


# ==================== PROTOCOL REGISTRY ====================


class RankRegistry:
    """Known sentiments and platforms"""

    SENTIMENTS = {
        OP_0: "negative",
        OP_1: "positive",
        OP_16: "neutral",
    }

    PLATFORMS = {
        0x00: PlatformParameters(
            "lotusia", profile_id_size=20, post_id_size=32, profile_id_text=False, post_id_numeric=False
        ),
        0x01: PlatformParameters(
            "twitter", profile_id_size=16, post_id_size=8, profile_id_text=True, post_id_numeric=True
        ),
    }

    @classmethod
    def sentiment(cls, opcode: int) -> Optional[str]:
        return cls.SENTIMENTS.get(opcode)

    @classmethod
    def platform(cls, platform_byte: int) -> Optional[PlatformParameters]:
        return cls.PLATFORMS.get(platform_byte)


# ==================== DECODER ====================


class RankDecoder:
    """Decode RANK outputs of the form

    OP_RETURN <"RANK"> <sentiment> <platform> <profileId> [<postId>]
    """

    def decode(self, script: Script) -> Optional[RankPayload]:
        """Return the RANK payload, or None for any other data output"""
        if not script.is_data_out():
            return None

        try:
            chunks = script.chunks
        except ScriptError as e:
            logger.debug(f"Unparseable data output {script.to_hex()}: {e}")
            return None

        if len(chunks) < 5 or chunks[0].opcode != OP_RETURN:
            return None
        if chunks[1].data != RANK_LOKAD_PREFIX:
            return None

        sentiment = RankRegistry.sentiment(chunks[2].opcode)
        if sentiment is None or chunks[2].data is not None:
            return None

        platform_data = chunks[3].data
        if platform_data is None or len(platform_data) != 1:
            return None
        platform = RankRegistry.platform(platform_data[0])
        if platform is None:
            return None

        profile_id = self._decode_profile_id(chunks[4], platform)
        if profile_id is None:
            return None

        post_id = None
        if len(chunks) > 5:
            post_id = self._decode_post_id(chunks[5], platform)
            if post_id is None:
                return None

        return RankPayload(
            sentiment=sentiment,
            platform=platform.name,
            profile_id=profile_id,
            post_id=post_id,
        )

    def _decode_profile_id(self, chunk: ScriptChunk, platform: PlatformParameters) -> Optional[str]:
        data = chunk.data
        if data is None or len(data) != platform.profile_id_size:
            return None
        if not platform.profile_id_text:
            return data.hex()
        # Handles are left-padded with null bytes to the platform width
        trimmed = data.lstrip(b"\x00")
        if not trimmed:
            return None
        try:
            return trimmed.decode("utf-8")
        except UnicodeDecodeError:
            return trimmed.hex()

    def _decode_post_id(self, chunk: ScriptChunk, platform: PlatformParameters) -> Optional[str]:
        data = chunk.data
        if data is None or len(data) != platform.post_id_size:
            return None
        if platform.post_id_numeric:
            return str(int.from_bytes(data, "big"))
        return data.hex()


_decoder = RankDecoder()


def decode_rank(script: Script) -> Optional[RankPayload]:
    """Decode a RANK payload from a data output script"""
    return _decoder.decode(script)
