"""Concrete FrameSource implementations (OpenCV camera and file playback)."""
