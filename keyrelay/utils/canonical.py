from typing import Any, Union

import orjson


def encode_frame(d: dict) -> str:
    # text frames; browsers expect str, not binary
    return orjson.dumps(d).decode("utf-8")


def decode_frame(raw: Union[str, bytes]) -> Any:
    return orjson.loads(raw)
