"""Core building blocks shared by every memweave layer."""
