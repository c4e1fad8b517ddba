"""epistate: epidemic state engine for agent-based disease simulation.

An individual-based engine driving a fixed daily activity trajectory:
  - Per-person disease / quarantine / test / vaccination state
  - Per-strain antibody waning and boosting from immunization history
  - Dose-response transmission probability per contact
  - Stochastic disease progression with cached dwell times
  - Capacity- and delay-constrained contact tracing
  - Deterministic parallel contact evaluation and checkpointing
"""

__version__ = "0.1.0"
