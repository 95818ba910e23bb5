from ghostfolio_agent.registry import ToolRegistry, ToolSpec
from ghostfolio_agent.tools.allocation import AllocationOptimizerArgs, allocation_optimizer
from ghostfolio_agent.tools.compliance import ComplianceCheckerArgs, compliance_checker
from ghostfolio_agent.tools.market_data import MarketContextArgs, market_context
from ghostfolio_agent.tools.portfolio import PortfolioSummaryArgs, portfolio_summary
from ghostfolio_agent.tools.tax_estimate import TaxEstimatorArgs, tax_estimator
from ghostfolio_agent.tools.transactions import TransactionAnalyzerArgs, transaction_analyzer

TOOL_SPECS = [
    ToolSpec(
        name="portfolio_summary",
        description=(
            "Get a comprehensive summary of the user's investment portfolio including holdings, "
            "allocation percentages, asset classes, current values, and overall performance metrics. "
            "Use this when the user asks about their portfolio overview, holdings, or allocation."
        ),
        args_schema=PortfolioSummaryArgs,
        handler=portfolio_summary,
    ),
    ToolSpec(
        name="transaction_analyzer",
        description=(
            "Analyze the user's transaction history including activity counts by type and month, "
            "total fees, and date ranges. Use this when the user asks about their transactions, "
            "trading activity, fees, or order history."
        ),
        args_schema=TransactionAnalyzerArgs,
        handler=transaction_analyzer,
    ),
    ToolSpec(
        name="market_context",
        description=(
            "Get current market prices, currency, and market state for specific symbols. "
            "Use this when the user asks about current prices, market conditions, or wants to "
            "compare holdings to market data."
        ),
        args_schema=MarketContextArgs,
        handler=market_context,
    ),
    ToolSpec(
        name="tax_estimator",
        description=(
            "Estimate capital gains and tax liability using FIFO lot matching. Use this when the "
            "user asks about taxes, capital gains, realized/unrealized gains, or cost basis."
        ),
        args_schema=TaxEstimatorArgs,
        handler=tax_estimator,
    ),
    ToolSpec(
        name="compliance_checker",
        description=(
            "Check the portfolio for compliance issues including concentration risk, "
            "diversification, and currency exposure. Use this when the user asks about portfolio "
            "risks, compliance, or diversification issues."
        ),
        args_schema=ComplianceCheckerArgs,
        handler=compliance_checker,
    ),
    ToolSpec(
        name="allocation_optimizer",
        description=(
            "Compare current portfolio allocation against a target allocation and suggest "
            "rebalancing. Use this when the user asks about rebalancing, target allocation, or "
            "portfolio optimization."
        ),
        args_schema=AllocationOptimizerArgs,
        handler=allocation_optimizer,
    ),
]


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()
    for spec in TOOL_SPECS:
        registry.register(spec)
    return registry
