"""Supervision, result extraction, and quota scheduling for Claude Code runs.

One logical run launches the ``claude`` CLI in stream-json mode, drains its
output under soft and hard time limits, and looks for a single
``WVRUNNER_RESULT:`` JSON object in the transcript. The run loop keeps an
in-memory history of those records for the current day and stops once the
user's daily hour goal is used up.

Why not a generic job runner?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Only one agent process runs at a time, and the interesting failures are
specific to the agent: a result object buried in double-escaped stream-json,
a process that keeps running after it has reported, a marker that never
appears because the agent ran out of turns. Retrying those means resuming the
agent session (``--continue``) with adjusted instructions, not re-queueing an
opaque job.
"""
