from fastapi import APIRouter, Depends, Request

from spireworks.dependencies import get_current_user
from spireworks.models.user import User
from spireworks.schemas.preferences import Preferences, PreferencesUpdate
from spireworks.services.preferences_service import MemoryStorage, PreferencesStore

router = APIRouter(prefix="/preferences", tags=["preferences"])


def _store_for(user: User, req: Request) -> tuple[PreferencesStore, MemoryStorage]:
    storage = MemoryStorage(user.settings_json)
    store = PreferencesStore(storage)

    timers = getattr(req.app.state, "timers", None)
    if timers is not None:
        store.subscribe(lambda prefs: timers.update_preferences(user.id, prefs))
    return store, storage


@router.get("", response_model=Preferences)
async def get_preferences(user: User = Depends(get_current_user)):
    return PreferencesStore(MemoryStorage(user.settings_json)).load()


@router.put("", response_model=Preferences)
async def update_preferences(
    data: PreferencesUpdate,
    req: Request,
    user: User = Depends(get_current_user),
):
    store, storage = _store_for(user, req)
    preferences = store.update(**data.model_dump(exclude_none=True))
    # Reassign so the JSON column is marked dirty
    user.settings_json = storage.data
    return preferences


@router.post("/reset", response_model=Preferences)
async def reset_preferences(req: Request, user: User = Depends(get_current_user)):
    store, storage = _store_for(user, req)
    preferences = store.reset()
    user.settings_json = storage.data
    return preferences
