#!/usr/bin/env python3
"""Example: Recording and Loading a Demonstration

Records a few synthetic episodes with two vector sensors into a ``.demo``
file, then loads it back and prints per-episode statistics.

Usage:
    python examples/01_record_demonstration.py

Requirements:
    pip install agent-demo-recorder
"""
from __future__ import annotations

import numpy as np

import agent_demo_recorder
from agent_demo_recorder import (
    DemonstrationRecorder,
    RecorderConfig,
    SessionParameters,
    StepRecord,
    VectorSensor,
    load_demonstration,
)


def main() -> None:
    print(f"agent-demo-recorder version: {agent_demo_recorder.__version__}")

    position = VectorSensor("position", size=3)
    velocity = VectorSensor("velocity", size=3)
    parameters = SessionParameters.from_sensors(
        "Reacher", [position, velocity], action_shape=(3,)
    )
    rng = np.random.default_rng(7)

    with DemonstrationRecorder(config=RecorderConfig(directory="demos")) as recorder:
        path = recorder.initialize("reacher", parameters)
        for episode in range(3):
            state = np.zeros(3, dtype=np.float32)
            for t in range(5 + episode):
                action = rng.uniform(-0.1, 0.1, size=3).astype(np.float32)
                position.observe(state)
                velocity.observe(action)
                last = t == 4 + episode
                recorder.record(
                    StepRecord(action=action, reward=10.0 if last else 1.0, done=last),
                    sensors=[position, velocity],
                )
                state = state + action

    demonstration = load_demonstration(path)
    metadata = demonstration.metadata
    print(f"\nSaved {path}")
    print(f"  Steps: {metadata.experience_count}")
    print(f"  Episodes (incl. the one counted on close): {metadata.episode_count}")
    print(f"  Mean reward: {metadata.mean_reward:.2f}")

    for index, episode_steps in enumerate(demonstration.episodes()):
        total = sum(step.reward for step in episode_steps)
        print(f"  Episode {index}: {len(episode_steps)} steps, total_reward={total:.1f}")


if __name__ == "__main__":
    main()
