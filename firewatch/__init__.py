"""Firewatch — location tracking and fire/hydrant marker coordination."""
