"""
Sample events shown when the event listing cannot be loaded.

They exist only so that read-only views have something to display while
the backend is unreachable.  Registration is closed on all of them so
that no write is ever attempted against an event that does not exist.
"""

from typing import List

from community_client.app.schemas.event import Event


DEMO_EVENTS = [
    {
        "_id": "demo-1",
        "title": "AI & Machine Learning Workshop",
        "description": "Learn the latest in AI and ML technologies",
        "category": "Workshop",
        "type": "Online",
        "difficulty": "Beginner",
        "startDate": "2025-03-25T14:00:00Z",
        "endDate": "2025-03-25T17:00:00Z",
        "timezone": "UTC",
        "duration": 180,
        "location": {"venue": "Virtual Event"},
        "maxAttendees": 100,
        "currentAttendees": 0,
        "registrationOpen": False,
        "tags": ["AI", "Machine Learning", "Workshop"],
    },
    {
        "_id": "demo-2",
        "title": "Research Symposium 2025",
        "description": "Present your research and network with peers",
        "category": "Conference",
        "type": "In-Person",
        "difficulty": "Advanced",
        "startDate": "2025-04-10T09:00:00Z",
        "endDate": "2025-04-10T18:00:00Z",
        "timezone": "UTC",
        "duration": 540,
        "location": {"venue": "Innovation Hub", "city": "New York", "country": "USA"},
        "maxAttendees": 200,
        "currentAttendees": 0,
        "registrationOpen": False,
        "tags": ["Research", "Networking"],
    },
    {
        "_id": "demo-3",
        "title": "Cloud Architecture Webinar",
        "description": "Design scalable systems on modern cloud platforms",
        "category": "Webinar",
        "type": "Online",
        "difficulty": "Intermediate",
        "startDate": "2025-05-05T16:00:00Z",
        "endDate": "2025-05-05T18:00:00Z",
        "timezone": "UTC",
        "duration": 120,
        "location": {"venue": "Virtual Event"},
        "maxAttendees": 500,
        "currentAttendees": 0,
        "registrationOpen": False,
        "tags": ["Cloud", "Architecture"],
    },
]


def demo_events(limit: int = 0) -> List[Event]:
    events = [Event.model_validate(raw) for raw in DEMO_EVENTS]
    return events[:limit] if limit else events
