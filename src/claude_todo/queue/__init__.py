"""Task queue that feeds a single external coding CLI.

A task is pushed as ``pending``, claimed by exactly one worker, executed by
shelling out to the ``claude`` binary and finished as ``completed`` or
``failed``.  Coordination between workers happens only through the version
column of the task row: a claim is a version-checked write, and the loser of
a race re-selects.  Rate-limit responses from the CLI are not failures; the
worker waits until the advertised resume time and retries the same task.
"""
