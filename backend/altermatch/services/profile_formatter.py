"""
Alter Compatibility Backend — Profile Formatting & Hashing
===========================================================

What:  Renders a structured UserProfile as the text block the prompt
       builder expects, and fingerprints the score-relevant fields.
Who:   CompatibilityService, before evaluating or looking up the cache.

Hash scope:
    Only profile_ai, age, gender and sexual_orientation are hashed. The
    model's score is driven almost entirely by these; bio and interests
    change often and are left out so cosmetic edits keep the cache valid.
"""

import hashlib
import json

from altermatch.schemas.compatibility import UserProfile


# (attribute, label) in render order
PROFILE_AI_SECTIONS = (
    ("personality", "Personality"),
    ("intention", "Intention"),
    ("identity", "Identity"),
    ("friendship", "Friendship"),
    ("love", "Love"),
    ("sexuality", "Sexuality"),
)


def format_profile(profile: UserProfile) -> str:
    """
    Render a profile as Markdown-ish text for the compatibility prompt.

    Absent optional fields are omitted entirely rather than shown as blanks.
    """
    parts = [
        f"**Profile: {profile.first_name or 'User'}, {profile.age} years old**",
        f"Gender: {profile.gender}",
    ]

    if profile.sexual_orientation:
        parts.append(f"Sexual orientation: {profile.sexual_orientation}")

    if profile.bio:
        parts.append(f"\nBio: {profile.bio}")

    if profile.interests:
        parts.append(f"\nInterests: {', '.join(profile.interests)}")

    if profile.search_objectives:
        parts.append(f"\nLooking for: {', '.join(profile.search_objectives)}")

    if profile.profile_ai:
        sections = [
            f"- {label}: {getattr(profile.profile_ai, attr)}"
            for attr, label in PROFILE_AI_SECTIONS
            if getattr(profile.profile_ai, attr)
        ]
        if sections:
            parts.append("\n**AI profile**:")
            parts.extend(sections)

    return "\n".join(parts)


def profile_hash(profile: UserProfile) -> str:
    """SHA-256 hex digest of the score-relevant profile fields."""
    core = {
        "profile_ai": profile.profile_ai.model_dump(exclude_none=True) if profile.profile_ai else None,
        "age": profile.age,
        "gender": profile.gender,
        "sexual_orientation": profile.sexual_orientation,
    }
    canonical = json.dumps(core, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def profile_has_changed(profile: UserProfile, previous_hash: str) -> bool:
    return profile_hash(profile) != previous_hash
