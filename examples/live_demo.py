"""Live hand tracking and retargeting demo.

Real-time hand tracking from a camera, retargeted onto a MuJoCo hand model.
Requires the ``tracking`` extra.
"""

import argparse
import asyncio
import logging
import threading
import time
from pathlib import Path

import cv2
import mujoco
import mujoco.viewer
from askin import KeyboardController

from handmimic import (
    CalibrationManager,
    ChainIKSolver,
    JsonFileCalibrationStore,
    LandmarkAngleSolver,
    MujocoTargetModel,
    PipelineConfig,
    QuaternionDecompositionSolver,
    RetargetingPipeline,
    SemanticJointMapper,
)
from handmimic.presets import get_joint_map
from handmimic.solvers import HandPoseSolver
from handmimic.tracker import MediaPipeTracker

logger = logging.getLogger(__name__)


class HandMimicDemo:
    """Camera capture, retargeting pipeline and a passive MuJoCo viewer."""

    def __init__(
        self,
        camera_id: int = 0,
        model_path: str = "models/hand.xml",
        side: str = "right",
        solver: str = "angles",
        preset: str | None = None,
        calibration_dir: str | None = None,
    ) -> None:
        """Initialize the demo.

        Args:
            camera_id: Camera device ID
            model_path: Path to the MuJoCo hand model
            side: Hand side driving the model ('left' or 'right')
            solver: 'angles', '3d', 'quaternion' or 'ik'
            preset: Optional joint map preset name (see ``handmimic.presets``)
            calibration_dir: Directory for persisted calibration; in-memory when None
        """
        logger.info("Initializing hand tracker...")
        self.hand_tracker = MediaPipeTracker()

        logger.info("Loading MuJoCo model from %s...", model_path)
        self.target = MujocoTargetModel.from_xml_path(model_path)
        self.mapper = SemanticJointMapper(self.target.joint_graph)
        self.side = side

        store = JsonFileCalibrationStore(calibration_dir) if calibration_dir else None
        self.calibration = CalibrationManager(store)
        self.solver = self._build_solver(solver)

        self.pipeline = RetargetingPipeline(
            self.solver,
            self.mapper,
            {side: self.target},
            name_map=get_joint_map(preset) if preset else None,
            config=PipelineConfig(extraction_mode="3d" if solver == "3d" else "scalar"),
        )
        logger.info("Mapped %d semantic joints", len(self.mapper.mapping))

        logger.info("Opening camera %d...", camera_id)
        self.cap = cv2.VideoCapture(camera_id)
        if not self.cap.isOpened():
            raise RuntimeError(f"Could not open camera {camera_id}")

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, 1280)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, 720)
        self.cap.set(cv2.CAP_PROP_FPS, 30)

        self.running = True
        self.lock = threading.Lock()

    def _build_solver(self, name: str) -> HandPoseSolver:
        if name in ("angles", "3d"):
            return LandmarkAngleSolver(mode="3d" if name == "3d" else "scalar", calibration=self.calibration)
        if name == "quaternion":
            return QuaternionDecompositionSolver(self.target.joint_graph)
        if name == "ik":
            return ChainIKSolver()
        raise ValueError(f"Unknown solver: {name}")

    def update_mujoco(self) -> None:
        """Push the latest joint values into the viewer until it closes."""
        with mujoco.viewer.launch_passive(self.target.model, self.target.data) as viewer:
            logger.info("MuJoCo viewer started")
            while self.running and viewer.is_running():
                with self.lock:
                    self.target.forward()
                viewer.sync()
                time.sleep(0.005)

    async def key_handler(self, key: str) -> None:
        """Keys: c calibrates, r resets, q quits."""
        if key == "q":
            self.running = False
            logger.info("Quitting...")
        elif key == "c":
            if isinstance(self.solver, LandmarkAngleSolver):
                handedness = "Left" if self.side == "left" else "Right"
                if self.solver.calibrate(handedness):
                    logger.info("Calibrated %s hand", self.side)
            else:
                logger.info("Calibration is only available for the landmark angle solver")
        elif key == "r":
            if isinstance(self.solver, LandmarkAngleSolver):
                self.solver.reset_calibration()
            self.pipeline.reset()

    async def run(self) -> None:
        """Main loop."""
        logger.info("Controls: 'q' quit, 'c' calibrate (hold an open hand), 'r' reset")

        controller = KeyboardController(key_handler=self.key_handler, timeout=0.01)
        await controller.start()

        mujoco_thread = threading.Thread(target=self.update_mujoco, daemon=True)
        mujoco_thread.start()
        await asyncio.sleep(1.0)

        frame_count = 0
        fps_start_time = time.time()
        fps: float = 0.0

        try:
            while self.running:
                ret, frame = self.cap.read()
                if not ret:
                    logger.error("Failed to read frame")
                    break

                timestamp = time.time()
                hand_frames = self.hand_tracker.detect_hands(frame, timestamp=timestamp)

                with self.lock:
                    result = self.pipeline.process(hand_frames, timestamp)

                frame = self.hand_tracker.visualize(frame, hand_frames)

                frame_count += 1
                if frame_count % 30 == 0:
                    fps_end_time = time.time()
                    fps = 30.0 / (fps_end_time - fps_start_time)
                    fps_start_time = fps_end_time

                written = len(result.written.get(self.side, {}))
                info_text = f"FPS: {fps:.1f} | Hands: {len(hand_frames)} | Joints written: {written}"
                cv2.putText(frame, info_text, (10, frame.shape[0] - 10), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 0), 2)
                cv2.imshow("Hand Tracking", frame)
                if cv2.waitKey(1) & 0xFF == ord("q"):
                    self.running = False

                await asyncio.sleep(0.001)

        finally:
            await controller.stop()
            self.running = False
            self.cap.release()
            self.hand_tracker.close()
            cv2.destroyAllWindows()
            logger.info("Demo finished.")


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Live hand tracking and retargeting demo")
    parser.add_argument("--camera", type=int, default=0, help="Camera ID (default: 0)")
    parser.add_argument("--model", type=str, default="models/hand.xml", help="Path to MuJoCo model")
    parser.add_argument("--side", choices=["left", "right"], default="right", help="Hand driving the model")
    parser.add_argument(
        "--solver",
        choices=["angles", "3d", "quaternion", "ik"],
        default="angles",
        help="Pose solver (default: angles)",
    )
    parser.add_argument("--preset", type=str, default=None, help="Joint map preset, e.g. shadow_hand")
    parser.add_argument("--calibration-dir", type=str, default=None, help="Persist calibration in this directory")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    model_path = Path(args.model)
    if not model_path.is_absolute():
        model_path = Path(__file__).parent.parent / model_path

    if not model_path.exists():
        logger.error("Model file not found: %s", model_path)
        return

    demo = HandMimicDemo(
        camera_id=args.camera,
        model_path=str(model_path),
        side=args.side,
        solver=args.solver,
        preset=args.preset,
        calibration_dir=args.calibration_dir,
    )
    await demo.run()


if __name__ == "__main__":
    asyncio.run(main())
