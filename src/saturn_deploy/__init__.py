# ABOUTME: Saturn smart deploy package initialization
# ABOUTME: Exposes version information

"""
Saturn smart deploy: redeploy only what a change set touches.

=============================================================================
WHAT DOES THIS PACKAGE DO?
=============================================================================

A monorepo often hosts several Saturn applications. Redeploying all of them
on every push wastes build time; redeploying by hand misses dependents. This
package:

1. READS the repository's .saturn.yml, which maps directories (glob
   patterns) to Saturn resources and declares which components trigger
   which others
2. DIFFS the working branch against its base branch with git
3. PLANS the components to deploy: the ones whose files changed, plus
   everything they transitively trigger
4. DEPLOYS them through the Saturn REST API, retrying transient failures
5. WAITS for the resulting deployments to reach a terminal status

When no .saturn.yml exists, components are auto-detected from the Saturn
resources whose git repository matches this checkout's remote.

=============================================================================
PACKAGE STRUCTURE OVERVIEW
=============================================================================

saturn_deploy/
├── __init__.py          <- YOU ARE HERE: Package entry point
├── config.py            <- Runtime settings (env vars, retry, timing, security)
├── errors.py            <- Exception hierarchy
├── server.py            <- MCP server exposing plan / deploy / wait tools
├── smart/
│   ├── glob.py          <- "**"-aware path pattern matching
│   ├── models.py        <- Config schema, plans, deploy results
│   ├── config_file.py   <- .saturn.yml load / write / generate
│   ├── planner.py       <- Changed files -> deploy plan
│   ├── executor.py      <- Deploy plan -> deployment UUIDs
│   ├── poller.py        <- Wait for deployments to finish
│   ├── git.py           <- git diff / remote helpers, auto-detection
│   └── service.py       <- The whole workflow over one client
└── utils/
    ├── client.py        <- Async Saturn REST client with retries
    ├── logging.py       <- Structured logging and audit trail
    └── safety.py        <- Read-only mode and rate limiting
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
