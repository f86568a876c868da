import os
import re

from conftest import DeferredScheduler, make_controller, record

from booth.models import SessionState
from booth.services.camera_port import CameraError, TransferError
from booth.services.virtual_camera import VirtualCamera

PHOTO_CYCLE_MS = 2800          # settle 1000 + countdown 1000 + grace 500 + device 300
NEXT_PHOTO_MS = 4000


def run_full_sequence(controller, scheduler, photos=3):
    assert controller.start().accepted
    scheduler.advance(PHOTO_CYCLE_MS + (photos - 1) * (NEXT_PHOTO_MS + PHOTO_CYCLE_MS) + 100)


def test_full_sequence_fills_every_slot_in_order(controller, scheduler, camera):
    states = record(controller.stateChanged)
    completed = record(controller.sequenceCompleted)
    captured = record(controller.photoCaptured)

    run_full_sequence(controller, scheduler)

    assert controller.state is SessionState.REVIEW_PENDING
    assert [c[0] for c in captured.calls] == [0, 1, 2]
    assert len(completed.calls) == 1
    paths = completed.last
    assert len(paths) == 3 and all(os.path.isfile(p) for p in paths)
    assert all(os.path.dirname(p) == controller.context.originals_dir for p in paths)
    for expected in (SessionState.PREPARING, SessionState.COUNTDOWN, SessionState.CAPTURING,
                     SessionState.TRANSFERRING, SessionState.SLOT_FILLED):
        assert expected in states.calls
    assert dict(camera.released) == {1: 1, 2: 1, 3: 1}
    assert camera.is_busy is False
    assert camera.live_view_on is False
    assert not controller.live_view.is_running


def test_thumbnails_are_240_wide(controller, scheduler):
    thumbs = record(controller.thumbnailReady)
    run_full_sequence(controller, scheduler)
    assert [t[0] for t in thumbs.calls] == [0, 1, 2]
    assert all(t[1].width() == 240 for t in thumbs.calls)


def test_countdown_ticks_down_to_zero_then_smiles(camera, scheduler, photo_root):
    from booth.config.settings import CaptureSettings
    ctl = make_controller(camera, scheduler, photo_root, 1, CaptureSettings(countdown_seconds=3))
    ticks = record(ctl.countdownTick)
    status = record(ctl.statusChanged)
    ctl.start()
    scheduler.advance(1000 + 3000)
    assert ticks.calls == [3, 2, 1, 0]
    assert status.last == "SMILE!"
    assert camera.capture_calls == 0
    scheduler.advance(500)
    assert camera.capture_calls == 1
    ctl.close()


def test_start_rejected_without_camera(controller, camera):
    camera.disconnect()
    assert controller.state is SessionState.DISCONNECTED
    states = record(controller.stateChanged)
    decision = controller.start()
    assert not decision.accepted
    assert decision.reason == "No camera connected"
    assert states.calls == []


def test_start_rejected_while_capturing(controller, scheduler):
    assert controller.start().accepted
    scheduler.advance(1500)
    decision = controller.start()
    assert not decision.accepted
    assert decision.reason == "Capture already in progress"
    assert controller.state is SessionState.COUNTDOWN


def test_min_interval_reports_rounded_up_wait(camera, scheduler, photo_root):
    ctl = make_controller(camera, scheduler, photo_root, photos=1)
    run_full_sequence(ctl, scheduler, photos=1)
    ctl.finish_session()
    # photo landed at 2800ms; now 2900 + 1400 = 4300 -> 4500ms left
    scheduler.advance(1400)
    decision = ctl.start()
    assert not decision.accepted
    assert decision.wait_seconds == 5
    assert decision.reason == "Please wait 5 seconds between photos"
    assert ctl.state is SessionState.IDLE

    scheduler.advance(4600)
    assert ctl.start().accepted
    ctl.close()


def test_busy_device_gives_up_after_twenty_attempts(controller, scheduler, camera):
    camera.busy_failures = 100
    states = record(controller.stateChanged)
    failed = record(controller.captureFailed)

    controller.start()
    scheduler.advance(PHOTO_CYCLE_MS)

    assert camera.capture_calls == 20
    assert scheduler.sleeps == [min(200 * k, 1000) / 1000.0 for k in range(1, 20)]
    assert SessionState.RETRYING in states.calls
    assert controller.state is SessionState.IDLE
    assert failed.calls == ["Camera too busy - Please try again"]
    assert camera.is_busy is False
    assert controller.tracker.filled_count == 0


def test_busy_refusals_are_retried_until_accepted(controller, scheduler, camera):
    camera.busy_failures = 3
    controller.start()
    scheduler.advance(PHOTO_CYCLE_MS + 10)
    assert scheduler.sleeps == [0.2, 0.4, 0.6]
    assert camera.capture_calls == 4
    assert controller.tracker.filled_count == 1


def test_capture_timeout_resets_and_keeps_progress(controller, scheduler, camera):
    camera.drop_events = 1
    failed = record(controller.captureFailed)
    starts_before = camera.live_view_starts

    controller.start()
    scheduler.advance(2500 + 15000 + 10)

    assert controller.state is SessionState.IDLE
    assert failed.calls == ["Photo capture timeout - Camera reset, please try again"]
    assert camera.is_busy is False
    assert camera.live_view_starts == starts_before + 2
    assert controller.tracker.filled_count == 0

    # the lost photo shows up late: released, not recorded
    assert camera.deliver_dropped() == 1
    assert camera.released[1] == 1
    assert controller.state is SessionState.IDLE
    assert controller.tracker.filled_count == 0

    assert controller.start().accepted
    scheduler.advance(PHOTO_CYCLE_MS + 10)
    assert controller.tracker.filled_count == 1


def test_timeout_of_completed_capture_never_fires(camera, scheduler, photo_root):
    ctl = make_controller(camera, scheduler, photo_root, photos=1)
    failed = record(ctl.captureFailed)
    run_full_sequence(ctl, scheduler, photos=1)
    scheduler.advance(20000)
    assert ctl.state is SessionState.REVIEW_PENDING
    assert failed.calls == []
    ctl.close()


def test_non_busy_error_ends_in_error_state(controller, scheduler, camera):
    camera.fail_with = CameraError("shutter jammed")
    failed = record(controller.captureFailed)
    controller.start()
    scheduler.advance(PHOTO_CYCLE_MS)
    assert controller.state is SessionState.ERROR
    assert failed.calls == ["Capture error: shutter jammed"]
    assert camera.is_busy is False
    assert camera.live_view_on is False


def test_transfer_failure_releases_handle_and_recovers_to_idle(controller, scheduler, camera):
    camera.transfer_error = TransferError("usb reset")
    failed = record(controller.captureFailed)
    controller.start()
    scheduler.advance(PHOTO_CYCLE_MS + 10)
    assert controller.state is SessionState.IDLE
    assert failed.calls == ["Transfer error: usb reset"]
    assert camera.is_busy is False
    assert camera.released[1] == 1
    assert controller.tracker.filled_count == 0


def test_empty_filename_gets_timestamp_name(controller, scheduler, camera):
    camera.empty_filenames = True
    captured = record(controller.photoCaptured)
    controller.start()
    scheduler.advance(PHOTO_CYCLE_MS + 10)
    name = os.path.basename(captured.last[1])
    assert re.fullmatch(r"IMG_\d{8}_\d{6}(_\d+)?\.jpg", name)


def test_existing_file_name_gets_suffix(controller, scheduler):
    originals = controller.context.originals_dir
    os.makedirs(originals, exist_ok=True)
    with open(os.path.join(originals, "DSC00001.JPG"), "wb") as f:
        f.write(b"older")
    captured = record(controller.photoCaptured)
    controller.start()
    scheduler.advance(PHOTO_CYCLE_MS + 10)
    assert os.path.basename(captured.last[1]) == "DSC00001_2.JPG"
    with open(os.path.join(originals, "DSC00001.JPG"), "rb") as f:
        assert f.read() == b"older"


def test_disconnect_mid_countdown_stops_session(controller, scheduler, camera):
    controller.start()
    scheduler.advance(1500)
    camera.disconnect()
    assert controller.state is SessionState.DISCONNECTED
    scheduler.advance(20000)
    assert camera.capture_calls == 0
    assert not controller.live_view.is_running

    camera.reconnect()
    assert controller.state is SessionState.IDLE


def test_abort_cancels_outstanding_work(controller, scheduler, camera):
    states = record(controller.stateChanged)
    controller.start()
    scheduler.advance(2600)            # shutter fired, photo not yet reported
    controller.abort()

    assert SessionState.ABORTED in states.calls
    assert controller.state is SessionState.IDLE
    assert camera.live_view_on is False
    assert camera.is_busy is False

    scheduler.advance(20000)
    assert camera.released[1] == 1
    assert controller.tracker.filled_count == 0
    assert controller.state is SessionState.IDLE
    assert camera.capture_calls == 1


def test_busy_between_photos_waits_for_operator(camera, scheduler, photo_root):
    ctl = make_controller(camera, scheduler, photo_root, photos=2)
    status = record(ctl.statusChanged)
    ctl.start()
    scheduler.advance(PHOTO_CYCLE_MS + 10)
    assert ctl.tracker.filled_count == 1

    camera.is_busy = True
    camera.busy_locked = True
    scheduler.advance(NEXT_PHOTO_MS + 1000)
    assert ctl.state is SessionState.IDLE
    assert status.last == "Camera reset failed - Touch START for photo 2 of 2"

    camera.busy_locked = False
    camera.is_busy = False
    scheduler.advance(1000)
    assert ctl.start().accepted
    scheduler.advance(PHOTO_CYCLE_MS + 10)
    assert ctl.state is SessionState.REVIEW_PENDING
    assert ctl.tracker.filled_count == 2
    ctl.close()


def test_busy_between_photos_recovers_after_reset(camera, scheduler, photo_root):
    ctl = make_controller(camera, scheduler, photo_root, photos=2)
    ctl.start()
    scheduler.advance(PHOTO_CYCLE_MS + 10)
    camera.is_busy = True
    scheduler.advance(NEXT_PHOTO_MS + 1000 + PHOTO_CYCLE_MS)
    assert ctl.state is SessionState.REVIEW_PENDING
    ctl.close()


def test_retake_replaces_only_the_target_slot(controller, scheduler):
    retaken = record(controller.retakeCompleted)
    run_full_sequence(controller, scheduler)
    before = controller.tracker.paths()

    assert controller.start_retake(1)
    scheduler.advance(PHOTO_CYCLE_MS + 10)

    after = controller.tracker.paths()
    assert retaken.calls == [1]
    assert after[0] == before[0] and after[2] == before[2]
    assert after[1] != before[1] and os.path.isfile(after[1])
    assert controller.tracker.next_index == 3
    assert controller.state is SessionState.REVIEW_PENDING


def test_retake_refused_outside_review(controller, scheduler):
    assert not controller.start_retake(0)
    run_full_sequence(controller, scheduler)
    assert not controller.start_retake(7)
    assert controller.state is SessionState.REVIEW_PENDING


def test_failed_retake_returns_to_review(controller, scheduler, camera):
    run_full_sequence(controller, scheduler)
    before = controller.tracker.paths()
    camera.fail_with = CameraError("lens error")
    controller.start_retake(0)
    scheduler.advance(PHOTO_CYCLE_MS)
    assert controller.state is SessionState.REVIEW_PENDING
    assert controller.tracker.paths() == before
    assert not controller.tracker.in_retake


def test_session_snapshot_reflects_progress(controller, scheduler):
    controller.start()
    scheduler.advance(PHOTO_CYCLE_MS + 100)
    snap = controller.session
    assert snap.required_photo_count == 3
    assert snap.countdown_seconds == 1
    assert snap.min_capture_interval_ms == 6000
    assert [s.filled for s in snap.slots] == [True, False, False]


def test_abort_before_prepare_worker_runs_starts_no_live_view(photo_root):
    sched = DeferredScheduler()
    camera = VirtualCamera(sched, width=320, height=240)
    ctl = make_controller(camera, sched, photo_root, 1)
    ctl.start()
    ctl.abort()
    sched.run_jobs()
    assert ctl.state is SessionState.IDLE
    assert camera.live_view_starts == 0
    assert camera.live_view_on is False
    ctl.close()


def test_live_view_started_by_abandoned_prepare_is_stopped(photo_root):
    class AbortDuringStart(VirtualCamera):
        on_start = None

        def start_live_view(self):
            hook, self.on_start = self.on_start, None
            if hook is not None:
                hook()
            super().start_live_view()

    sched = DeferredScheduler()
    camera = AbortDuringStart(sched, width=320, height=240)
    ctl = make_controller(camera, sched, photo_root, 1)
    camera.on_start = ctl.abort
    ctl.start()
    sched.run_jobs()
    assert camera.live_view_starts == 1
    assert camera.live_view_on is False
    assert ctl.state is SessionState.IDLE
    assert not ctl.live_view.is_running
    ctl.close()


def test_capture_worker_of_aborted_session_never_fires_shutter(photo_root):
    sched = DeferredScheduler()
    camera = VirtualCamera(sched, width=320, height=240)
    ctl = make_controller(camera, sched, photo_root, 1)
    ctl.start()
    sched.run_jobs()
    sched.advance(1000 + 1000 + 500)
    assert ctl.state is SessionState.CAPTURING
    assert len(sched.jobs) == 1
    ctl.abort()
    sched.run_jobs()
    assert camera.capture_calls == 0

    assert ctl.start().accepted
    sched.run_jobs()
    sched.advance(2500)
    sched.run_jobs()
    assert camera.capture_calls == 1
    ctl.close()
