import asyncio
import os
import sys
from pathlib import Path

from slash.slash_datatypes import VariableStore
from slash.slash_runtime import PipelineRunner

# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)

def make_runner() -> PipelineRunner:
    """Build a runner, seeding variables from $SLASH_VARS when it names a file."""
    vars_path = os.environ.get("SLASH_VARS")
    store = VariableStore.from_file(vars_path) if vars_path else None
    return PipelineRunner(store=store)

def print_result(result):
    # Print side effects (from /echo)
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return
    if result.value:
        print(result.value)

async def run_script_file(file_path: str):
    """Run every pipeline line of a file non-interactively and exit with appropriate status."""
    runner = make_runner()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    for line in source.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        result = await runner.run(line)
        print_result(result)
        if result.status == 'error':
            raise SystemExit(1)

async def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            await run_script_file(arg)
            return

    print("slash REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = make_runner()

    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            print_result(await runner.run(line))

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
