"""
Run a whole classification session against the streaming simulator.

Collects examples for class 1 (alpha-dominant) and class 2 (beta-dominant),
cross-validates and fits, then predicts while the simulator switches class:
    python scripts/demo_session.py --seconds 4 --speed 4
"""

import argparse
import sys
import time
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from neuroclassifier.core.config import get_settings
from neuroclassifier.core.logging import configure_logging, get_logger
from neuroclassifier.eeg.simulator import StreamingEEGSimulator
from neuroclassifier.pipeline import ClassifierSession

logger = get_logger(__name__)


def wait_for_examples(session, label, n_examples, timeout):
    deadline = time.monotonic() + timeout
    while session.get_collected_counts()[label] < n_examples:
        if time.monotonic() > deadline:
            break
        time.sleep(0.05)


def run(args):
    settings = get_settings()
    session = ClassifierSession(settings)
    context = session.initialize()

    simulator = StreamingEEGSimulator(
        channel_names=context.channel_names,
        sampling_rate=context.sampling_rate,
        seed=args.seed,
        speed=args.speed,
        mains_amplitude=20.0
    )

    print(f"Session: {context.sampling_rate} Hz, channels {', '.join(context.channel_names)}, "
          f"mains filter {'on' if context.filter_enabled else 'off'}")

    simulator.start(session.on_sample)
    try:
        # 1. Collect
        for label in (1, 2):
            simulator.set_class(label)
            session.start_collecting(label)
            wait_for_examples(session, label, args.examples, timeout=60.0)
            count = session.stop()
            print(f"Collected {count} examples for class {label}")

        # 2. Fit
        report = session.fit_with_score(k=args.folds, seed=args.seed)
        print(f"\nCross-validated accuracy: {report.score:.2f}")
        print(f"Priors: {report.priors}")
        print("Most discriminative features:")
        for name, power in list(report.feature_power.items())[:5]:
            print(f"  {name:<12} {power:8.2f}")

        # 3. Predict, switching class half way
        print()
        session.subscribe(
            on_fault=lambda fault: print(f"Pipeline fault: {fault.reason} (fatal={fault.fatal})")
        )
        for label in (1, 2):
            simulator.set_class(label)
            session.start_predicting()
            time.sleep(args.seconds / args.speed)
            session.stop()

            predictions = session.drain_predictions()
            labels = [p.label for p in predictions]
            hits = sum(1 for predicted in labels if predicted == label)
            print(f"Class {label} active: {len(labels)} predictions, "
                  f"{hits} correct, last ten {labels[-10:]}")
    finally:
        simulator.stop()
        session.stop()

    status = session.get_status()
    logger.info("demo_session_complete", score=report.score, counts=status['counts'])
    print(f"\nFinal status: mode={status['mode']}, counts={status['counts']}, "
          f"trained={status['is_trained']}")


def main():
    parser = argparse.ArgumentParser(description="Simulated EEG classification session")
    parser.add_argument("--examples", type=int, default=20, help="Examples to collect per class")
    parser.add_argument("--folds", type=int, default=5, help="Cross-validation folds")
    parser.add_argument("--seconds", type=float, default=4.0, help="Simulated seconds to predict per class")
    parser.add_argument("--speed", type=float, default=4.0, help="Simulator speed vs real time")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--log-format", choices=["json", "console"], default="console")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    configure_logging(level=args.log_level, log_format=args.log_format)

    try:
        run(args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
