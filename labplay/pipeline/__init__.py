"""Agent pipeline: stream decoding, transcript, guard replay and orchestration."""
