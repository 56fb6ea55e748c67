"""Runs model-written Python in the sandbox."""

from anveshak.tools.base import Tool


class ExecutePythonTool(Tool):
    name = "executePython"
    description = (
        "Execute Python code in an isolated sandbox. The last expression is "
        "returned; print() and console.log() output is captured as logs."
    )
    parameters = {
        "type": "object",
        "properties": {"code": {"type": "string"}},
    }

    def __init__(self, sandbox):
        self.sandbox = sandbox

    def meta(self, args: dict) -> dict:
        return {"code": args.get("code", "")}

    async def invoke(self, args: dict) -> str:
        return await self.sandbox.execute(str(args.get("code") or ""))
