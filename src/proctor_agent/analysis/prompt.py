"""
Proctoring Prompt
=================

Instruction text and detection thresholds per strictness level.

The prompt tells the model which behaviours count as violations and how
to report them (marker lines, see proctor_agent.analysis.parser). The
strictness level shortens durations in the prompt and lowers the
confidence thresholds applied to the parsed events.

Strictness table:
    level   looking_away  low_engagement  movement   thresholds (away/engage/move)
    low     5s            20s             excessive  0.9 / 0.9  / 0.9
    medium  3s            15s             repeated   0.8 / 0.85 / 0.8
    high    2s            10s             frequent   0.7 / 0.75 / 0.7
    Multiple faces is always 0.85.
"""

from typing import Dict

from proctor_agent.analysis.parser import VIOLATION_MARKER
from proctor_agent.models.session import Strictness
from proctor_agent.models.violation import ViolationCategory


_LOOKING_AWAY_SECONDS = {
    Strictness.LOW: 5,
    Strictness.MEDIUM: 3,
    Strictness.HIGH: 2,
}

_LOW_ENGAGEMENT_SECONDS = {
    Strictness.LOW: 20,
    Strictness.MEDIUM: 15,
    Strictness.HIGH: 10,
}

_MOVEMENT_WORDING = {
    Strictness.LOW: "excessive",
    Strictness.MEDIUM: "repeated",
    Strictness.HIGH: "frequent",
}

_THRESHOLDS = {
    Strictness.LOW: {
        ViolationCategory.LOOKING_AWAY: 0.9,
        ViolationCategory.LOW_ENGAGEMENT: 0.9,
        ViolationCategory.SUSPICIOUS_MOVEMENT: 0.9,
    },
    Strictness.MEDIUM: {
        ViolationCategory.LOOKING_AWAY: 0.8,
        ViolationCategory.LOW_ENGAGEMENT: 0.85,
        ViolationCategory.SUSPICIOUS_MOVEMENT: 0.8,
    },
    Strictness.HIGH: {
        ViolationCategory.LOOKING_AWAY: 0.7,
        ViolationCategory.LOW_ENGAGEMENT: 0.75,
        ViolationCategory.SUSPICIOUS_MOVEMENT: 0.7,
    },
}

MULTIPLE_FACES_THRESHOLD = 0.85


def build_system_prompt(strictness: Strictness = Strictness.MEDIUM) -> str:
    """
    Build the proctoring instructions sent ahead of every frame.

    Args:
        strictness: Policy level

    Returns:
        Prompt text asking for marker lines only
    """
    strictness = Strictness(strictness)
    away = _LOOKING_AWAY_SECONDS[strictness]
    engagement = _LOW_ENGAGEMENT_SECONDS[strictness]
    movement = _MOVEMENT_WORDING[strictness]
    m = VIOLATION_MARKER

    return f"""## Video Proctoring Instructions
You are proctoring the webcam feed of a candidate during a live interview.
Inspect the image for the violations listed below.
Reply ONLY with violation lines when you detect a violation. If there is no
violation, reply with nothing at all. Never address the candidate.

Violations:

1. Attention: the candidate looks away from the screen for more than {away} seconds.
   Report as: "{m} Looking Away"

2. Multiple faces: more than one face is visible in the frame.
   Report as: "{m} Multiple Faces Detected"

3. Engagement: the candidate appears distracted, tired or disengaged for more than {engagement} seconds.
   Report as: "{m} Low Engagement"

4. Suspicious behaviour: {movement} suspicious movements such as glancing off-screen.
   Report as: "{m} Suspicious Movement - <describe the movement>"

5. Devices: a phone or another device is visible in the frame.
   Report as: "{m} Unauthorized Device"

Rules:
- Report only clear violations you are highly confident about.
- Every violation line must start with "{m}".
- One violation per line.
"""


def detection_thresholds(
    strictness: Strictness = Strictness.MEDIUM,
) -> Dict[ViolationCategory, float]:
    """
    Per-category minimum confidence for a strictness level.

    Categories without an entry fall back to the global threshold.
    """
    thresholds = dict(_THRESHOLDS[Strictness(strictness)])
    thresholds[ViolationCategory.MULTIPLE_FACES] = MULTIPLE_FACES_THRESHOLD
    return thresholds
