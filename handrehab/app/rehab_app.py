#!/usr/bin/env python3
"""
HANDREHAB - Hand Rehabilitation Trainer
Main Application

Runs the training engine on a live webcam feed. A worker thread captures
frames and runs the MediaPipe hand landmarker; the main loop drains the
latest landmark result once per tick and drives the active session.
"""

import argparse
import json
import sys
import threading
import time
import urllib.request
from pathlib import Path
from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

from handrehab.config.config_manager import Config, config
from handrehab.app.latest_result import LatestResultSlot
from handrehab.detectors.hand_metrics import LandmarkFrame
from handrehab.detectors.mode_selector import ModeSelector, SelectedMode
from handrehab.detectors.template_scorer import ReferenceTemplate, TemplateLibrary
from handrehab.session import events as ev
from handrehab.session.card_mode import CardModeSession
from handrehab.session.random_mode import RandomModeSession
from handrehab.session.session_log import end_summary, summarize
from handrehab.session.storage import (
    SessionPersistenceError, load_templates, save_session_log, save_template,
)
from handrehab.session.training_session import EndReason

# MediaPipe Tasks API for GPU support
from mediapipe.tasks.python import vision as mp_vision
from mediapipe.tasks.python.core.base_options import BaseOptions

# Legacy solutions API (absent from recent mediapipe wheels)
mp_hands = getattr(getattr(mp, 'solutions', None), 'hands', None)

# Model URL and local path
HAND_LANDMARKER_MODEL_URL = 'https://storage.googleapis.com/mediapipe-models/hand_landmarker/hand_landmarker/float16/1/hand_landmarker.task'
HAND_LANDMARKER_MODEL_PATH = Path(__file__).parent.parent / 'models' / 'hand_landmarker.task'

# Card payloads armed from the keyboard in card mode (stand-in for a QR scanner)
KEY_CARDS = {
    '1': {'card_id': 'K1', 'gesture': 'open', 'difficulty': 'medium'},
    '2': {'card_id': 'K2', 'gesture': 'fist', 'difficulty': 'medium'},
    '3': {'card_id': 'K3', 'gesture': 'ok', 'difficulty': 'medium'},
}

# MediaPipe connections
HAND_CONNECTIONS = [
    (0, 1), (1, 2), (2, 3), (3, 4),
    (0, 5), (5, 6), (6, 7), (7, 8),
    (0, 9), (9, 10), (10, 11), (11, 12),
    (0, 13), (13, 14), (14, 15), (15, 16),
    (0, 17), (17, 18), (18, 19), (19, 20),
    (5, 9), (9, 13), (13, 17),
]


def ensure_model_downloaded():
    """Download the hand landmarker model if not present."""
    model_path = HAND_LANDMARKER_MODEL_PATH
    model_path.parent.mkdir(parents=True, exist_ok=True)

    if not model_path.exists():
        print("📥 Downloading hand landmarker model...")
        try:
            urllib.request.urlretrieve(HAND_LANDMARKER_MODEL_URL, str(model_path))
            print(f"✓ Model downloaded to {model_path}")
        except OSError as e:
            print(f"⚠ Failed to download model: {e}")
            return None

    return str(model_path)


class HandLandmarkSource:
    """MediaPipe wrapper returning at most one LandmarkFrame per image."""

    def __init__(self, flip_horizontal: bool = True):
        detection_conf = config.get('performance', 'min_detection_confidence', default=0.7)
        tracking_conf = config.get('performance', 'min_tracking_confidence', default=0.5)
        use_gpu = config.get('performance', 'use_gpu', default=False)
        self.flip_horizontal = flip_horizontal
        self.hand_landmarker = None
        self.hands = None

        model_path = ensure_model_downloaded()
        if model_path:
            delegates = [BaseOptions.Delegate.GPU, BaseOptions.Delegate.CPU] if use_gpu else [BaseOptions.Delegate.CPU]
            for delegate in delegates:
                try:
                    options = mp_vision.HandLandmarkerOptions(
                        base_options=BaseOptions(model_asset_path=model_path, delegate=delegate),
                        running_mode=mp_vision.RunningMode.IMAGE,
                        num_hands=1,
                        min_hand_detection_confidence=detection_conf,
                        min_tracking_confidence=tracking_conf,
                    )
                    self.hand_landmarker = mp_vision.HandLandmarker.create_from_options(options)
                    print(f"✓ MediaPipe HandLandmarker initialized ({delegate.name})")
                    break
                except (RuntimeError, ValueError) as e:
                    print(f"⚠ HandLandmarker {delegate.name} initialization failed: {e}")

        if self.hand_landmarker is None:
            if mp_hands is None:
                raise RuntimeError("❌ No MediaPipe hand detector available")
            self.hands = mp_hands.Hands(
                min_detection_confidence=detection_conf,
                min_tracking_confidence=tracking_conf,
                max_num_hands=1,
            )
            print("✓ MediaPipe Hands (legacy) initialized")

    def _label(self, label: str) -> str:
        # Mirrored images report the opposite hand
        if self.flip_horizontal:
            return 'Right' if label.lower() == 'left' else 'Left'
        return label.capitalize()

    def detect(self, frame_rgb: np.ndarray) -> Optional[LandmarkFrame]:
        if self.hand_landmarker is not None:
            mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=frame_rgb)
            results = self.hand_landmarker.detect(mp_image)
            if results.hand_landmarks:
                label = results.handedness[0][0].category_name if results.handedness else None
                return LandmarkFrame.from_landmarks(results.hand_landmarks[0],
                                                    self._label(label) if label else None)
            return None

        results = self.hands.process(frame_rgb)
        if results.multi_hand_landmarks:
            label = None
            if results.multi_handedness:
                label = self._label(results.multi_handedness[0].classification[0].label)
            return LandmarkFrame.from_landmarks(results.multi_hand_landmarks[0], label)
        return None

    def close(self):
        if self.hand_landmarker:
            try:
                self.hand_landmarker.close()
            except RuntimeError as e:
                print(f"⚠ Error closing hand landmarker: {e}")
        if self.hands:
            self.hands.close()


class CaptureWorker(threading.Thread):
    """Camera + detector loop; publishes every result into the slot."""

    def __init__(self, cap, source: HandLandmarkSource, slot: LatestResultSlot, flip_horizontal: bool = True):
        super().__init__(daemon=True)
        self.cap = cap
        self.source = source
        self.slot = slot
        self.flip_horizontal = flip_horizontal
        self.running = True
        self.failed = False
        self._image_lock = threading.Lock()
        self._image = None

    @property
    def latest_image(self):
        with self._image_lock:
            return None if self._image is None else self._image.copy()

    def run(self):
        while self.running:
            ret, frame_bgr = self.cap.read()
            if not ret:
                print("❌ Failed to read frame")
                self.failed = True
                break
            if not self.running:
                break
            if self.flip_horizontal:
                frame_bgr = cv2.flip(frame_bgr, 1)
            frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
            self.slot.publish(self.source.detect(frame_rgb))
            with self._image_lock:
                self._image = frame_bgr

    def stop(self):
        self.running = False


class RehabApplication:
    """Main HANDREHAB application controller."""

    def __init__(self, camera_idx=0, mode='select', templates_dir=None, log_dir=None,
                 gesture_name=None, show_window=True):
        print("\n" + "=" * 60)
        print("HANDREHAB - Hand Rehabilitation Trainer")
        print("=" * 60 + "\n")

        self.mode = mode
        self.templates_dir = Path(templates_dir or config.get('paths', 'templates_dir', default='recordings'))
        self.log_dir = Path(log_dir or config.get('paths', 'log_dir', default='sessions'))
        self.gesture_name = gesture_name
        self.show_window = show_window and config.get('display', 'show_window', default=True)
        self.window_name = config.get('display', 'window_name', default='HANDREHAB')
        flip = config.get('display', 'flip_horizontal', default=True)

        self.cap = cv2.VideoCapture(camera_idx)
        if not self.cap.isOpened():
            raise RuntimeError(f"❌ Could not open camera {camera_idx}")
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.get('camera', 'width', default=640))
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.get('camera', 'height', default=480))
        self.cap.set(cv2.CAP_PROP_FPS, config.get('camera', 'fps', default=30))
        print(f"✓ Camera initialized: {int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))}x"
              f"{int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))}")

        self.source = HandLandmarkSource(flip_horizontal=flip)
        self.slot = LatestResultSlot()
        self.worker = CaptureWorker(self.cap, self.source, self.slot, flip_horizontal=flip)

        self.events = ev.EventDispatcher()
        self.events.subscribe(ev.ROUND_COMPLETED, self._on_round_completed)
        self.events.subscribe(ev.SESSION_ENDED, self._on_session_ended)
        self.events.subscribe(ev.GESTURE_CONFIRMED, lambda gesture: print(f"  > Confirmed: {gesture.value}"))
        self.events.subscribe(ev.DIFFICULTY_CHANGED,
                              lambda level, previous: print(f"  > Difficulty {previous} -> {level}"))

        self.selector = ModeSelector.from_config()
        self.session = None
        self.templates: Optional[TemplateLibrary] = None
        self.captured: Optional[LandmarkFrame] = None
        self.frame: Optional[LandmarkFrame] = None
        self.running = True
        self.started_at = time.monotonic()

        if mode != 'select':
            try:
                self._start_mode(mode)
            except RuntimeError:
                self.cap.release()
                self.source.close()
                raise

    def _on_round_completed(self, record):
        print(f"  > Round: {record.gesture_name} score={record.final_score:.2f} "
              f"attitude={record.attitude.name.lower()}")

    def _on_session_ended(self, total_rounds, reason):
        print(f"🏁 Session ended: {reason.value} ({total_rounds} rounds)")

    def _start_mode(self, mode: str):
        self.mode = mode
        if mode == 'random':
            self.templates = load_templates(self.templates_dir, TemplateLibrary.from_config())
            if len(self.templates) == 0:
                raise RuntimeError(f"❌ No templates in {self.templates_dir}; run with --mode record first")
            self.session = RandomModeSession.from_config(self.templates, events=self.events)
            self.session.start()
        elif mode == 'card':
            self.session = CardModeSession.from_config(events=self.events, log_dir=self.log_dir)
            print("  Press 1/2/3 to scan an open/fist/ok card")
        elif mode == 'record':
            if not self.gesture_name:
                raise RuntimeError("❌ --gesture is required in record mode")
            print(f"  Recording '{self.gesture_name}': SPACE to capture, S to save")
        self.started_at = time.monotonic()
        print(f"✓ Mode: {mode}")

    def run(self):
        """Main application loop."""
        self.worker.start()
        last_tick = time.monotonic()
        try:
            while self.running and not self.worker.failed:
                available, frame = self.slot.take()
                if available:
                    now = time.monotonic()
                    dt, last_tick = now - last_tick, now
                    self.frame = frame
                    self._tick(frame, dt)

                if self.session is not None and getattr(self.session, 'finished', False):
                    self.running = False

                key = self._show()
                if key:
                    self._handle_key(key)
        except KeyboardInterrupt:
            print("\n⚠ Interrupted by user")
        finally:
            self.cleanup()

    def _tick(self, frame, dt):
        if self.mode == 'select':
            selected = self.selector.update(frame, dt)
            if selected is not None:
                try:
                    self._start_mode('card' if selected == SelectedMode.CARD else 'random')
                except RuntimeError as e:
                    print(e)
                    self.running = False
        elif self.mode in ('random', 'card'):
            self.session.tick(frame, dt)

    def _handle_key(self, k: str):
        if k == 'q':
            self.running = False
        elif self.mode == 'card' and k in KEY_CARDS:
            card = dict(KEY_CARDS[k], hold_secs=config.get('card_mode', 'default_hold_secs', default=1.0))
            self.session.on_card_scanned(json.dumps(card))
        elif self.mode == 'record' and k == ' ':
            if self.frame is not None and self.frame.is_valid:
                self.captured = self.frame
                print("✓ Pose captured")
            else:
                print("⚠ No hand visible")
        elif self.mode == 'record' and k == 's':
            self._save_capture()

    def _save_capture(self):
        template = ReferenceTemplate.create(self.gesture_name, self.captured) if self.captured else None
        if template is None:
            print("⚠ Nothing captured yet")
            return
        try:
            save_template(template, self.templates_dir)
        except SessionPersistenceError as e:
            print(f"❌ {e}")

    def _draw_hand_skeleton(self, image, color=(255, 200, 0)):
        pts = self.frame.hand_points if self.frame is not None else None
        if pts is None:
            return
        h, w = image.shape[:2]
        for start_idx, end_idx in HAND_CONNECTIONS:
            start = (int(pts[start_idx, 0] * w), int(pts[start_idx, 1] * h))
            end = (int(pts[end_idx, 0] * w), int(pts[end_idx, 1] * h))
            cv2.line(image, start, end, color, 2)

    def _overlay_lines(self) -> List[str]:
        lines = [f"Mode: {self.mode}"]
        if self.mode == 'select':
            lines.append("5 fingers: random | 1 finger: card")
            lines.append(f"Hold: {self.selector.progress * 100:.0f}%")
        elif isinstance(self.session, RandomModeSession):
            s = self.session
            lines.append(f"State: {s.state_machine.state.value}  Level: {s.difficulty.level}")
            lines.append(f"Target: {s.current_gesture}  Phase: {s.phase.value}")
            lines.append(f"Live: {s.engine.live_score}  Left: {max(0.0, s.engine.remaining):.1f}s")
            if s.attitude.active:
                lines.append(f"Show: {s.attitude.displayed_target.name}  Hold: {s.attitude.hold_progress * 100:.0f}%")
        elif isinstance(self.session, CardModeSession):
            s = self.session
            lines.append(f"State: {s.state_machine.state.value}  Done: {s.state_machine.total_completed}")
            lines.append(f"Gesture: {s.classifier.current_gesture.value}  Hold: {s.judge.progress * 100:.0f}%")
        elif self.mode == 'record':
            lines.append(f"Recording: {self.gesture_name}  Captured: {'yes' if self.captured else 'no'}")
        return lines

    def _show(self) -> Optional[str]:
        if not self.show_window:
            time.sleep(0.005)
            return None
        image = self.worker.latest_image
        if image is None:
            time.sleep(0.005)
            return None
        self._draw_hand_skeleton(image)
        for i, line in enumerate(self._overlay_lines()):
            cv2.putText(image, line, (10, 25 + i * 22), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 0), 2)
        cv2.imshow(self.window_name, image)
        key = cv2.waitKey(1) & 0xFF
        return chr(key).lower() if key != 0xFF else None

    def _finish_session(self):
        if isinstance(self.session, RandomModeSession):
            log = self.session.finish(self.session.state_machine.end_reason or EndReason.ABORTED)
            stats = summarize(log)
            print(f"  Rounds: {stats.total_rounds}  Avg score: {stats.average_final_score:.2f}  "
                  f"Avg time: {stats.average_time_taken:.2f}s")
            self._save_log(log)
        elif isinstance(self.session, CardModeSession):
            log = self.session.finish()
            print(f"  Cards: {len(log.cards)}  State checks: {len(log.state_checks)}")
            self._save_log(log)
        if self.session is not None:
            sm = self.session.state_machine
            sm.stop(sm.end_reason or EndReason.ABORTED)
            for line in end_summary(sm.total_completed, time.monotonic() - self.started_at, sm.end_reason).lines():
                print(f"  {line}")

    def _save_log(self, log):
        try:
            save_session_log(log, self.log_dir)
        except SessionPersistenceError as e:
            print(f"❌ {e}")

    def cleanup(self):
        """Clean up resources."""
        print("\n🧹 Cleaning up...")
        self._finish_session()
        self.worker.stop()
        if self.worker.is_alive():
            self.worker.join(timeout=1.0)
        if self.worker.is_alive():
            # Still inside read/detect; the daemon thread exits with the process
            print("⚠ Capture worker did not stop, leaving camera and detector open")
        else:
            self.cap.release()
            self.source.close()
        if self.show_window:
            cv2.destroyAllWindows()
        print("✓ HANDREHAB stopped\n")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="HANDREHAB - Hand Rehabilitation Trainer")
    parser.add_argument('--camera', type=int, default=None,
                        help='Camera device index (default: from config)')
    parser.add_argument('--mode', choices=['select', 'random', 'card', 'record'], default='select',
                        help='Training mode; "select" picks it with a hand pose (default: select)')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to config.json (default: bundled config)')
    parser.add_argument('--templates', type=str, default=None,
                        help='Directory with gesture_*.json templates')
    parser.add_argument('--log-dir', type=str, default=None,
                        help='Directory for session logs')
    parser.add_argument('--gesture', type=str, default=None,
                        help='Gesture name to record, e.g. "2peace" (record mode)')
    parser.add_argument('--no-window', action='store_true',
                        help='Run without the camera window')
    args = parser.parse_args()

    if args.config:
        Config(args.config)

    camera = args.camera if args.camera is not None else config.get('camera', 'index', default=0)
    try:
        app = RehabApplication(
            camera_idx=camera,
            mode=args.mode,
            templates_dir=args.templates,
            log_dir=args.log_dir,
            gesture_name=args.gesture,
            show_window=not args.no_window,
        )
    except RuntimeError as e:
        print(e)
        return 1
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
