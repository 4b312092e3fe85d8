"""Descriptive bands for average scores."""

EXCELLENT = 4.5
GREAT = 3.8
GOOD = 3.0
AVERAGE = 2.0
POOR = 1.0


def score_rating(score: float) -> str:
    """Return a descriptive rating for a 1-5 score."""
    if score >= EXCELLENT:
        return "Excellent"
    if score >= GREAT:
        return "Great"
    if score >= GOOD:
        return "Good"
    if score >= AVERAGE:
        return "Average"
    if score >= POOR:
        return "Poor"
    return "Bad"
