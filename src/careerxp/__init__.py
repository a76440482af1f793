"""Career platform gamification: XP, points, streaks and badges."""
