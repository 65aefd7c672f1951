"""Local, non-authoritative client state kept in a small JSON file.

Holds the last room code, the cached profile id and token, and the sound /
animation / haptics toggles (all enabled unless switched off).
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

KEY_LAST_ROOM_CODE = 'last_room_code'
KEY_PROFILE_ID = 'profile_id'
KEY_AUTH_TOKEN = 'auth_token'
KEY_SOUND = 'sound'
KEY_ANIMATIONS = 'animations'
KEY_HAPTICS = 'haptics'


class ClientStorage:
    def __init__(self, path):
        self._path = Path(path)
        self._data = self._load()

    def _load(self) -> dict:
        try:
            with open(self._path, encoding='utf-8') as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable client storage %s: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix='.storage-')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(self._data, fh)
            os.replace(tmp, self._path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def _get(self, key: str):
        return self._data.get(key)

    def _set(self, key: str, value) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
        self._save()

    # room code

    def get_room_code(self) -> Optional[str]:
        value = self._get(KEY_LAST_ROOM_CODE)
        return value if isinstance(value, str) else None

    def set_room_code(self, code: str) -> None:
        self._set(KEY_LAST_ROOM_CODE, code)

    def clear_room_code(self) -> None:
        self._set(KEY_LAST_ROOM_CODE, None)

    # identity

    def get_profile_id(self) -> Optional[str]:
        return self._get(KEY_PROFILE_ID)

    def get_auth_token(self) -> Optional[str]:
        return self._get(KEY_AUTH_TOKEN)

    def set_identity(self, profile_id: str, token: str) -> None:
        self._data[KEY_PROFILE_ID] = profile_id
        self._data[KEY_AUTH_TOKEN] = token
        self._save()

    # settings

    def _flag(self, key: str) -> bool:
        value = self._get(key)
        return True if value is None else bool(value)

    @property
    def sound(self) -> bool:
        return self._flag(KEY_SOUND)

    @sound.setter
    def sound(self, enabled: bool) -> None:
        self._set(KEY_SOUND, bool(enabled))

    @property
    def animations(self) -> bool:
        return self._flag(KEY_ANIMATIONS)

    @animations.setter
    def animations(self, enabled: bool) -> None:
        self._set(KEY_ANIMATIONS, bool(enabled))

    @property
    def haptics(self) -> bool:
        return self._flag(KEY_HAPTICS)

    @haptics.setter
    def haptics(self, enabled: bool) -> None:
        self._set(KEY_HAPTICS, bool(enabled))
