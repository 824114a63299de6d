"""python -m vecinity — start the gateway under the process orchestrator."""

from vecinity.orchestrator import ProcessOrchestrator


def main() -> None:
    ProcessOrchestrator().run()


if __name__ == "__main__":
    main()
