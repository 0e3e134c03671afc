"""AlphaRank templates — predictions, regime, portfolio, routine and ticker views."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardflow.signatures.catalog import ToolSignature

_PREDICTIONS = """export default function GeneratedUI({ data, onAction }) {
  const [view, setView] = useState("table");
  const picks = Array.isArray(data?.rows) ? data.rows : [];
  const top = picks.slice(0, 12);
  const count = Number(data?.totalStocksScanned ?? picks.length);
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2.5">
      <div className="flex items-center justify-between">
        <div>
          <div className="text-xs text-gray-400">AlphaRank Tool Mode</div>
          <div className="text-sm font-semibold text-gray-100">Prediction Command Center</div>
          <div className="text-[11px] text-gray-500">{String(data?.asOf ?? "Latest run")} • {count} stocks scanned</div>
        </div>
        <div className="flex gap-1.5">
          <button onClick={() => onAction("refresh", {})} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Refresh</button>
          <button onClick={() => onAction("market_regime", {})} className="px-2.5 py-1 text-xs rounded-full bg-indigo-600/30">Market Regime</button>
          <button onClick={() => onAction("daily_routine", {})} className="px-2.5 py-1 text-xs rounded-full bg-emerald-600/30">Run Daily Routine</button>
        </div>
      </div>
      <div className="flex gap-1.5">
        <button onClick={() => setView("table")} className="px-2.5 py-1 text-xs rounded-md border">Top Picks</button>
        <button onClick={() => setView("grid")} className="px-2.5 py-1 text-xs rounded-md border">Signals Grid</button>
      </div>
      <div className={view === "table" ? "space-y-1.5" : "grid grid-cols-3 gap-1.5"}>
        {top.map((row, idx) => {
          const ticker = String(row?.ticker ?? row?.symbol ?? "N/A");
          return (
            <button key={ticker + idx} onClick={() => onAction("ticker_detail", { ticker })} className="w-full text-left bg-gray-800 rounded-md px-2.5 py-2">
              <span className="text-xs text-gray-100">{Number(row?.rank ?? idx + 1)}. {ticker}</span>
              <span className="text-[11px] text-gray-400 ml-2">{Number(row?.score ?? 0).toFixed(2)}</span>
            </button>
          );
        })}
      </div>
    </div>
  );
}"""

_REGIME = """export default function GeneratedUI({ data, onAction }) {
  const signals = Array.isArray(data?.rows) ? data.rows : [];
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="text-xs text-gray-400">AlphaRank Tool Mode</div>
      <div className="text-sm font-semibold text-gray-100">Market Regime: {String(data?.regime ?? "unknown")}</div>
      <ul className="space-y-1">
        {signals.map((s, idx) => <li key={idx} className="text-xs text-gray-300">{String(s?.name ?? s?.label ?? idx)}: {String(s?.value ?? "")}</li>)}
      </ul>
      <button onClick={() => onAction("latest_predictions", {})} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Back to Predictions</button>
    </div>
  );
}"""

_PORTFOLIO = """export default function GeneratedUI({ data, onAction }) {
  const positions = Array.isArray(data?.rows) ? data.rows : [];
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="text-sm font-semibold text-gray-100">Portfolio Health</div>
      <div className="text-[11px] text-gray-500">{Number(data?.totalPositions ?? positions.length)} positions</div>
      {positions.map((p, idx) => (
        <button key={idx} onClick={() => onAction("ticker_detail", { ticker: p?.ticker })} className="w-full text-left text-xs text-gray-200">
          {String(p?.ticker ?? "N/A")} — {String(p?.status ?? p?.weight ?? "")}
        </button>
      ))}
      <button onClick={() => onAction("refresh", {})} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Refresh</button>
    </div>
  );
}"""

_ROUTINE = """export default function GeneratedUI({ data, onAction }) {
  const steps = Array.isArray(data?.rows) ? data.rows : [];
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="text-sm font-semibold text-gray-100">Daily Routine Report</div>
      {steps.map((s, idx) => (
        <div key={idx} className="text-xs text-gray-300">{String(s?.name ?? s?.label ?? "Step " + (idx + 1))}: {String(s?.status ?? "")}</div>
      ))}
      <button onClick={() => onAction("daily_routine", {})} className="px-2.5 py-1 text-xs rounded-full bg-emerald-600/30">Run Again</button>
    </div>
  );
}"""

_TICKER = """export default function GeneratedUI({ data, onAction }) {
  const history = Array.isArray(data?.rows) ? data.rows : [];
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="text-sm font-semibold text-gray-100">{String(data?.ticker ?? "Ticker")} Detail</div>
      {history.slice(0, 20).map((h, idx) => (
        <div key={idx} className="text-xs text-gray-300">{String(h?.date ?? idx)}: {String(h?.rank ?? h?.score ?? "")}</div>
      ))}
      <button onClick={() => onAction("latest_predictions", {})} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Back</button>
    </div>
  );
}"""


def template_code(signature: ToolSignature) -> str:
    match signature.signature_id:
        case "market_regime_snapshot":
            return _REGIME
        case "portfolio_health":
            return _PORTFOLIO
        case "routine_execution_report":
            return _ROUTINE
        case "ticker_detail":
            return _TICKER
        case _:
            return _PREDICTIONS
