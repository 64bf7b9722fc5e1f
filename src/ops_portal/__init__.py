"""Operations portal package.

Organized by feature modules (maintenance, purchases, cashbook, tasks, ...)
with a thin Flask JSON controller layer over service/repository layers.
Cross-cutting pieces live in ``notifications``, ``sync`` and ``email``.
"""
