"""Row types for the hosted tables (flipbooks, profiles, flipbook_views)."""

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flipflow.plans import PlanType, normalize_plan

TEMP_ID_PREFIX = 'temp-'


def _utcnow_iso():
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Flipbook:
    id: str
    user_id: str
    title: str
    pdf_url: str
    description: Optional[str] = None
    is_public: bool = True
    view_count: int = 0
    background_color: str = '#ffffff'
    logo_url: Optional[str] = None
    cover_image_url: Optional[str] = None
    show_covers: bool = True
    cover_overlay_enabled: bool = True
    cover_overlay_text: Optional[str] = None
    cover_overlay_color: str = 'rgba(0, 0, 0, 0.5)'
    cover_text_color: str = '#ffffff'
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    # Local-only marker for optimistic records awaiting server confirmation
    pending: bool = field(default=False, compare=False)

    # Columns the owner may change through the edit form
    EDITABLE = ('title', 'description', 'is_public', 'background_color', 'logo_url',
                'cover_image_url', 'show_covers', 'cover_overlay_enabled',
                'cover_overlay_text', 'cover_overlay_color', 'cover_text_color')

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Flipbook':
        known = {f.name for f in fields(cls)} - {'pending'}
        data = {k: v for k, v in row.items() if k in known}
        # nullable columns with defaults on the server
        if data.get('is_public') is None:
            data['is_public'] = True
        if data.get('view_count') is None:
            data['view_count'] = 0
        if data.get('show_covers') is None:
            data['show_covers'] = True
        if data.get('cover_overlay_enabled') is None:
            data['cover_overlay_enabled'] = True
        if data.get('background_color') is None:
            data['background_color'] = '#ffffff'
        return cls(**data)

    @classmethod
    def pending_draft(cls, user_id: str, draft: Dict[str, Any]) -> 'Flipbook':
        """Build the optimistic placeholder shown while a create is in flight."""
        now = _utcnow_iso()
        row = dict(draft)
        row.update(id=f"{TEMP_ID_PREFIX}{uuid.uuid4()}", user_id=user_id,
                   created_at=now, updated_at=now)
        row.setdefault('pdf_url', '')
        flipbook = cls.from_row(row)
        flipbook.pending = True
        return flipbook

    def to_row(self, include_id: bool = True) -> Dict[str, Any]:
        row = asdict(self)
        row.pop('pending', None)
        row.pop('created_at', None)
        row.pop('updated_at', None)
        if not include_id:
            row.pop('id', None)
        return row

    def merged(self, updates: Dict[str, Any]) -> 'Flipbook':
        row = asdict(self)
        row.update(updates)
        pending = row.pop('pending', False)
        merged = Flipbook.from_row(row)
        merged.pending = pending
        return merged

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)


@dataclass
class Profile:
    id: str
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    plan: Optional[str] = PlanType.FREE.value
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Profile':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})

    @property
    def effective_plan(self) -> PlanType:
        return normalize_plan(self.plan)


@dataclass
class FlipbookView:
    flipbook_id: str
    id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    viewed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'FlipbookView':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})
