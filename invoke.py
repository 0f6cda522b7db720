"""Direct-invocation entry point: reads the event as JSON from the first argument."""
import json
import sys

import lambda_handler
from invoker_errors import ConfigurationError

USAGE = "First argument must be a config provided as JSON string"


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args:
        sys.exit(USAGE)

    # stdout carries only the JSON output
    previous_stream = lambda_handler.stdout_handler.setStream(sys.stderr)
    try:
        event = json.loads(args[0])
        if not isinstance(event, dict):
            raise ConfigurationError(f"The config must be a JSON object, got {type(event).__name__}")

        output = lambda_handler.handle(event)
    finally:
        if previous_stream is not None:
            lambda_handler.stdout_handler.setStream(previous_stream)

    print(json.dumps(output))
    return 0


if __name__ == "__main__":
    sys.exit(main())
