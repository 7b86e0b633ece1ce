"""
Pose estimation utilities.

This package defines the 33-point LandmarkSnapshot type, a model-agnostic
PoseProvider interface with a MediaPipe adapter, and the posture metric engine.
"""
