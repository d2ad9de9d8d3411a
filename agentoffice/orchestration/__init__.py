"""
Orchestration Package

Behavioural core of the office simulation:
- Agent state machine with guarded transitions
- Heuristic decision engine
- Collaboration approval sessions
- Confidence-weighted voting sessions
"""
