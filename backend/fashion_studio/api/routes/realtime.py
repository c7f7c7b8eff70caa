from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from fashion_studio.api.deps import current_profile, get_event_bus
from fashion_studio.infra.db.models import Profile
from fashion_studio.infra.realtime import RedisEventBus, format_sse

router = APIRouter(prefix="/realtime", tags=["realtime"])


@router.get("/events")
def events_stream(
    profile: Profile = Depends(current_profile),
    events: RedisEventBus = Depends(get_event_bus),
):
    user_id = profile.id

    def stream():
        for event in events.subscribe(user_id):
            yield format_sse(event)

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
