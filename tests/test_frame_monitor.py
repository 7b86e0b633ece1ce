from posecap.frame_monitor import (
	FACING_BACK,
	FACING_FRONT,
	MESSAGES,
	MSG_FIT_WHOLE_BODY,
	MSG_FULL_VISIBILITY,
	MSG_MOVE_DOWN,
	MSG_MOVE_LEFT,
	MSG_MOVE_RIGHT,
	MSG_MOVE_UP,
	MSG_NO_BODY,
	NO_ALERT,
	FrameQualityMonitor,
)
from posecap.pose import landmarks as L
from posecap.pose.types import LandmarkSnapshot
from posecap.voice import VoiceThrottle


def test_well_framed_pose_has_no_alert(make_snapshot):
	assert FrameQualityMonitor().classify(make_snapshot()) == NO_ALERT


def test_empty_snapshot_is_no_body():
	mon = FrameQualityMonitor()
	assert mon.classify(LandmarkSnapshot.empty()).code == MSG_NO_BODY
	assert mon.classify(None).code == MSG_NO_BODY


def test_single_head_violation_is_move_down_not_override(make_snapshot):
	alert = FrameQualityMonitor().classify(make_snapshot({L.NOSE: (0.5, 0.02)}))
	assert alert.code == MSG_MOVE_DOWN
	assert alert.message == MESSAGES[MSG_MOVE_DOWN]
	assert alert.violations == 1


def test_feet_below_margin_is_move_up(make_snapshot):
	alert = FrameQualityMonitor().classify(make_snapshot({L.RIGHT_ANKLE: (0.54, 0.97)}))
	assert alert.code == MSG_MOVE_UP


def test_multiple_violations_collapse_into_fit_whole_body(make_snapshot):
	alert = FrameQualityMonitor().classify(make_snapshot({L.NOSE: (0.5, 0.02), L.LEFT_FOOT_INDEX: (0.45, 0.98)}))
	assert alert.code == MSG_FIT_WHOLE_BODY
	assert alert.violations == 2


def test_side_violations_flip_with_facing(make_snapshot):
	mon = FrameQualityMonitor()
	left_out = make_snapshot({L.LEFT_SHOULDER: (0.02, 0.3)})
	right_out = make_snapshot({L.RIGHT_KNEE: (0.98, 0.7)})
	assert mon.classify(left_out, FACING_FRONT).code == MSG_MOVE_LEFT
	assert mon.classify(left_out, FACING_BACK).code == MSG_MOVE_RIGHT
	assert mon.classify(right_out, FACING_FRONT).code == MSG_MOVE_RIGHT
	assert mon.classify(right_out, FACING_BACK).code == MSG_MOVE_LEFT


def test_low_visibility_on_critical_landmark(make_snapshot):
	mon = FrameQualityMonitor()
	alert = mon.classify(make_snapshot({L.LEFT_WRIST: (0.4, 0.55, 0.3)}))
	assert alert.code == MSG_FULL_VISIBILITY


def test_low_visibility_elsewhere_is_ignored(make_snapshot):
	mon = FrameQualityMonitor()
	assert mon.classify(make_snapshot({L.LEFT_ELBOW: (0.42, 0.45, 0.1)})) == NO_ALERT


def test_boundary_beats_visibility(make_snapshot):
	mon = FrameQualityMonitor()
	alert = mon.classify(make_snapshot({L.NOSE: (0.5, 0.02, 0.1)}))
	assert alert.code == MSG_MOVE_DOWN


def test_disabled_monitor_clears_and_stays_quiet(make_snapshot, voice_sink, clock):
	voice = VoiceThrottle(voice_sink, interval=10.0, clock=clock)
	mon = FrameQualityMonitor(voice=voice)
	mon.evaluate(LandmarkSnapshot.empty())
	assert mon.current.code == MSG_NO_BODY
	assert len(voice_sink.spoken) == 1

	clock.advance(30.0)
	assert mon.evaluate(LandmarkSnapshot.empty(), enabled=False) == NO_ALERT
	assert mon.current == NO_ALERT
	assert len(voice_sink.spoken) == 1


def test_voice_is_throttled_at_30fps(make_snapshot, voice_sink, clock):
	voice = VoiceThrottle(voice_sink, interval=10.0, clock=clock)
	mon = FrameQualityMonitor(voice=voice)
	bad = [
		make_snapshot({L.NOSE: (0.5, 0.02)}),
		make_snapshot({L.RIGHT_ANKLE: (0.54, 0.97)}),
		LandmarkSnapshot.empty(),
	]
	spoken_at = []
	for i in range(30 * 25):
		before = voice.spoken_count
		mon.evaluate(bad[i % len(bad)])
		if voice.spoken_count != before:
			spoken_at.append(clock())
		clock.advance(1.0 / 30.0)

	assert len(spoken_at) == 3
	for a, b in zip(spoken_at, spoken_at[1:]):
		assert b - a > 10.0
	# Every utterance cancels whatever was playing first.
	assert voice_sink.cancels == len(spoken_at)


def test_no_alert_is_never_spoken(make_snapshot, voice_sink, clock):
	voice = VoiceThrottle(voice_sink, interval=10.0, clock=clock)
	mon = FrameQualityMonitor(voice=voice)
	for _ in range(5):
		mon.evaluate(make_snapshot())
		clock.advance(20.0)
	assert voice_sink.spoken == []
