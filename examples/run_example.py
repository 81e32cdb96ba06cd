import logging
from pathlib import Path

from behavior_driven_ui import execute_run


def main():
    """Example of running the sample shop project programmatically"""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    project = Path(__file__).parent / "shop"
    result = execute_run(config_path=project / "bdui.config.yaml", cwd=project)

    print(f"\nConfig: {result.config.config_file_path}")
    print(f"Support files: {', '.join(path.name for path in result.step_files)}")
    if result.run is not None:
        print(f"Scenarios: {result.run.scenarios}, failed: {result.run.failed_scenarios}")
    print(f"Status: {'passed' if result.success else 'failed'}")


if __name__ == "__main__":
    main()
