"""Travel and meal planner templates."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardflow.signatures.catalog import ToolSignature

_TRAVEL = """export default function GeneratedUI({ data, onAction }) {
  const days = Array.isArray(data?.rows) ? data.rows : [];
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="flex items-center justify-between">
        <div>
          <div className="text-sm font-semibold text-gray-100">Travel Planner Studio</div>
          <div className="text-[11px] text-gray-500">{String(data?.destination ?? "Trip")} • {Number(data?.totalDays ?? days.length)} days</div>
        </div>
        <button onClick={() => onAction("budget_breakdown", { destination: data?.destination })} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Budget</button>
      </div>
      {days.map((day, idx) => (
        <div key={idx} className="bg-gray-800 rounded-md px-2.5 py-1.5">
          <div className="text-xs text-gray-100">Day {Number(day?.day ?? idx + 1)}</div>
          <button onClick={() => onAction("optimize_day", { day: day?.day ?? idx + 1 })} className="text-[11px] text-indigo-300">Optimize</button>
        </div>
      ))}
    </div>
  );
}"""

_MEAL = """export default function GeneratedUI({ data, onAction }) {
  const days = Array.isArray(data?.rows) ? data.rows : [];
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="flex items-center justify-between">
        <div className="text-sm font-semibold text-gray-100">Meal Planning Lab</div>
        <button onClick={() => onAction("grocery_list", {})} className="px-2.5 py-1 text-xs rounded-full bg-emerald-600/30">Grocery List</button>
      </div>
      {days.map((day, idx) => (
        <div key={idx} className="bg-gray-800 rounded-md px-2.5 py-1.5 text-xs text-gray-200">
          <div>{String(day?.day ?? "Day " + (idx + 1))}</div>
          {(Array.isArray(day?.meals) ? day.meals : []).map((meal, j) => (
            <button key={j} onClick={() => onAction("swap_meal", { day: day?.day, meal: meal?.name ?? meal })} className="block text-[11px] text-gray-400">
              {String(meal?.name ?? meal)}
            </button>
          ))}
        </div>
      ))}
    </div>
  );
}"""


def travel_template_code(signature: ToolSignature) -> str:
    return _TRAVEL


def meal_template_code(signature: ToolSignature) -> str:
    return _MEAL
