# ABOUTME: Smart deploy package initialization
# ABOUTME: Change detection, planning, deployment and status polling

"""
Smart Deploy Package

Pipeline:
    config_file.py -> planner.py -> executor.py -> poller.py

service.py composes the stages; git.py supplies changed files and
auto-detection; glob.py matches component paths.
"""
