"""
Server-Sent Events framing for the live count stream.

- Count updates go out as `data: <json>` frames.
- Keep-alives are comment frames; EventSource clients ignore them.
"""
from app.core.schemas import CountSnapshot

MEDIA_TYPE = "text/event-stream"

HEARTBEAT_FRAME = ": heartbeat\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_data_frame(payload: str) -> str:
    return f"data: {payload}\n\n"


def encode_snapshot(snapshot: CountSnapshot) -> str:
    """Encode a snapshot as one SSE data frame."""
    return format_data_frame(snapshot.to_json())
