"""User API routes."""

from ehr_guard.access.policy import ResourceType
from ehr_guard.api.routes.crud import build_crud_router
from ehr_guard.core.schemas import UserCreate, UserRead, UserUpdate

router = build_crud_router(
    ResourceType.users,
    prefix="/users",
    tag="users",
    create_schema=UserCreate,
    update_schema=UserUpdate,
    read_schema=UserRead,
)
