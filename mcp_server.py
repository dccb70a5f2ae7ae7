"""
MCP Server: After-Sales Tools
=============================
Exposes the ToolRegistry over the Model Context Protocol.

Tools:
  - check_access_code_refund → Read-only. Usage, eligibility and refund amount.
  - deactivate_access_code   → WRITE. Re-checks the code, then deactivates it.
  - simulate_browser_access  → HTTP probe, restricted to the allowed domain.

Each tool forwards to ToolRegistry, so schema validation and the security gate
apply here exactly as they do for in-process callers.

Run standalone:   python -m mcp_server
Or via runtime:   LangGraphRuntime starts this as a subprocess (stdio transport).
"""
from mcp.server.fastmcp import FastMCP

from aftersales.config import configure_logging, load_settings
from aftersales.context import AppContext
from aftersales.tools import ToolRegistry

SERVER_NAME = "after_sales_tools"


def create_server(registry: ToolRegistry) -> FastMCP:
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool()
    async def check_access_code_refund(access_code: str) -> str:
        """
        查询 access code 使用信息。获取使用状态和剩余次数，用于判断退款资格。

        Args:
            access_code: 需要查询的 access code
        """
        return (await registry.check_access_code_refund(access_code)).text

    @mcp.tool()
    async def deactivate_access_code(
        access_code: str, reason: str = "user_refund_request"
    ) -> str:
        """
        停用 access code，将其状态设置为 inactive。这是退款操作的必要步骤，
        停用后该 access code 无法继续使用。只有在用户明确同意后才能调用。

        Args:
            access_code: 需要停用的 access code
            reason:      停用原因，如 'user_refund_request'
        """
        return (await registry.deactivate_access_code(access_code, reason)).text

    @mcp.tool()
    async def simulate_browser_access(
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        data: dict | list | str | None = None,
    ) -> str:
        """
        查询 API 接口，获取数据信息。只允许访问 ghibliflowstudio.com 域名。

        Args:
            url:     要访问的 URL
            method:  HTTP 方法
            headers: 自定义请求头
            data:    请求体数据
        """
        return (await registry.simulate_browser_access(url, method, headers, data)).text

    return mcp


def main() -> None:
    settings = load_settings()
    # stdout carries the protocol; logging goes to stderr (basicConfig default).
    configure_logging(settings.log_level)
    context = AppContext.create(settings)
    create_server(context.registry).run()


if __name__ == "__main__":
    main()
