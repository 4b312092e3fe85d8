"""Voter identity supplied by the authentication front end."""

from fastapi import Header

from dining_score.services.sessions import Identity


async def get_identity(
    x_voter_uid: str | None = Header(default=None),
    x_voter_name: str | None = Header(default=None),
    x_voter_photo: str | None = Header(default=None),
) -> Identity | None:
    """Build the acting voter from request headers; None for anonymous guests."""
    uid = (x_voter_uid or "").strip()
    if not uid:
        return None
    return Identity(
        uid=uid,
        display_name=(x_voter_name or "").strip() or None,
        photo_url=(x_voter_photo or "").strip() or None,
    )
