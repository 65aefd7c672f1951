"""Anonymous identity: profiles issued per device and their bearer tokens."""

import secrets
from typing import Optional

from flask import current_app

from bankroom import db
from bankroom.models import Profile
from bankroom.services.ledger.errors import ValidationError

MAX_NAME_LENGTH = 32
MAX_AVATAR_LENGTH = 16


def token_from_header(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        return None
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def find_profile_by_token(token: Optional[str]) -> Optional[Profile]:
    if not token:
        return None
    return Profile.query.filter_by(auth_token=token).first()


def create_anonymous_profile() -> Profile:
    profile = Profile(auth_token=secrets.token_urlsafe(32))
    db.session.add(profile)
    db.session.commit()
    current_app.logger.info(f"[auth-anonymous] profile={profile.id}")
    return profile


def update_profile(profile: Profile, display_name, avatar_token) -> Profile:
    if not isinstance(display_name, str) or not display_name.strip():
        raise ValidationError('Informe seu nome')
    display_name = display_name.strip()
    if len(display_name) > MAX_NAME_LENGTH:
        raise ValidationError(f'O nome deve ter no máximo {MAX_NAME_LENGTH} caracteres')
    if not isinstance(avatar_token, str) or not avatar_token.strip() or len(avatar_token.strip()) > MAX_AVATAR_LENGTH:
        raise ValidationError('Avatar inválido')
    profile.display_name = display_name
    profile.avatar_token = avatar_token.strip()
    db.session.add(profile)
    db.session.commit()
    return profile
