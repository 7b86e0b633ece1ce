"""
Fixed 33-point body landmark indexing (MediaPipe Pose order).

Every geometry rule in the pipeline addresses landmarks through these indices.
"""

NUM_LANDMARKS = 33

NOSE = 0
LEFT_EYE_INNER = 1
LEFT_EYE = 2
LEFT_EYE_OUTER = 3
RIGHT_EYE_INNER = 4
RIGHT_EYE = 5
RIGHT_EYE_OUTER = 6
LEFT_EAR = 7
RIGHT_EAR = 8
MOUTH_LEFT = 9
MOUTH_RIGHT = 10
LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_ELBOW = 13
RIGHT_ELBOW = 14
LEFT_WRIST = 15
RIGHT_WRIST = 16
LEFT_PINKY = 17
RIGHT_PINKY = 18
LEFT_INDEX = 19
RIGHT_INDEX = 20
LEFT_THUMB = 21
RIGHT_THUMB = 22
LEFT_HIP = 23
RIGHT_HIP = 24
LEFT_KNEE = 25
RIGHT_KNEE = 26
LEFT_ANKLE = 27
RIGHT_ANKLE = 28
LEFT_HEEL = 29
RIGHT_HEEL = 30
LEFT_FOOT_INDEX = 31
RIGHT_FOOT_INDEX = 32

LANDMARK_NAMES = [
	"nose",
	"left_eye_inner",
	"left_eye",
	"left_eye_outer",
	"right_eye_inner",
	"right_eye",
	"right_eye_outer",
	"left_ear",
	"right_ear",
	"mouth_left",
	"mouth_right",
	"left_shoulder",
	"right_shoulder",
	"left_elbow",
	"right_elbow",
	"left_wrist",
	"right_wrist",
	"left_pinky",
	"right_pinky",
	"left_index",
	"right_index",
	"left_thumb",
	"right_thumb",
	"left_hip",
	"right_hip",
	"left_knee",
	"right_knee",
	"left_ankle",
	"right_ankle",
	"left_heel",
	"right_heel",
	"left_foot_index",
	"right_foot_index",
]

# Framing regions checked by the frame-quality monitor.
HEAD = NOSE
FEET = [LEFT_FOOT_INDEX, RIGHT_FOOT_INDEX, LEFT_ANKLE, RIGHT_ANKLE]
LEFT_SIDE = [LEFT_SHOULDER, LEFT_ELBOW, LEFT_WRIST, LEFT_HIP, LEFT_KNEE]
RIGHT_SIDE = [RIGHT_SHOULDER, RIGHT_ELBOW, RIGHT_WRIST, RIGHT_HIP, RIGHT_KNEE]
CRITICAL = [
	NOSE,
	LEFT_WRIST,
	RIGHT_WRIST,
	LEFT_HIP,
	RIGHT_HIP,
	LEFT_ANKLE,
	RIGHT_ANKLE,
	LEFT_FOOT_INDEX,
	RIGHT_FOOT_INDEX,
]

# Skeleton connection groups drawn by the overlay.
TORSO = [(11, 12), (12, 24), (24, 23), (23, 11)]
LEFT_ARM = [(11, 13), (13, 15)]
RIGHT_ARM = [(12, 14), (14, 16)]
LEFT_LEG = [(23, 25), (25, 27), (27, 29), (29, 31)]
RIGHT_LEG = [(24, 26), (26, 28), (28, 30), (30, 32)]
FACE = [(0, 1), (0, 4), (1, 2), (2, 3), (3, 7), (4, 5), (5, 6), (6, 8)]
