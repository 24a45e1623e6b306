from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Preferences(BaseModel):
    """User preferences; serialized with the web client's camelCase keys."""

    auto_start_break: bool = True
    auto_start_study: bool = False
    sound_notifications: bool = True
    desktop_notifications: bool = True
    default_paper_style: str = "blank"
    default_paper_color: str = "white"
    default_view_mode: str = "document"

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True
    )


class PreferencesUpdate(BaseModel):
    auto_start_break: bool | None = None
    auto_start_study: bool | None = None
    sound_notifications: bool | None = None
    desktop_notifications: bool | None = None
    default_paper_style: str | None = None
    default_paper_color: str | None = None
    default_view_mode: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
