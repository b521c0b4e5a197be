"""Entry point for running the agent server as a module.

Usage:
    python -m agent_kit
"""

from agent_kit.app import main

if __name__ == "__main__":
    main()
