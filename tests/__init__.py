"""
Attendance Store Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies, in-memory remote store)
- integration/: Full write/read flows through AttendanceStore
"""
