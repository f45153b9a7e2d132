import asyncio
import logging
from typing import Any, Dict, List

from .errors import ElementNotFound, NavigationTimeout
from .forms import FIELD_ORDER, FormSpec
from .models import FieldValues

logger = logging.getLogger(__name__)


def plan_fill_steps(form: FormSpec, values: FieldValues) -> List[Dict[str, Any]]:
    """Translate field values into ordered driver steps for ``form``.

    Fields the form has no selector for are skipped, as are ``None`` values,
    so one fixture can feed registration, login and search alike.
    """
    steps = []
    for field in FIELD_ORDER:
        value = getattr(values, field)
        if value is None:
            continue

        if field == "date_of_birth":
            if form.date_of_birth is None:
                logger.debug("%s form has no date of birth selects", form.name)
                continue
            for selector, part in zip(form.date_of_birth, (value.day, value.month, value.year)):
                steps.append({"action": "select", "target": selector, "value": str(part), "field": field})
            continue

        selector = form.selector_for(field)
        if selector is None:
            logger.debug("%s form has no %s field", form.name, field)
            continue

        if field == "gender":
            steps.append({"action": "check", "target": selector.format(value), "field": field})
        elif field == "newsletter":
            if value:
                steps.append({"action": "check", "target": selector, "field": field})
        else:
            steps.append({"action": "fill", "target": selector, "value": value, "field": field})

    return steps


class ActionExecutor:
    """Executes driver steps with retry for the idempotent ones"""

    def __init__(self, retry_count: int = 2, retry_delay: float = 0.5):
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self.action_handlers = {
            'navigate': self._execute_navigate,
            'fill': self._execute_fill,
            'check': self._execute_check,
            'select': self._execute_select,
            'click': self._execute_click,
            'wait': self._execute_wait,
        }

    async def execute(self, session, step: Dict[str, Any]) -> Dict[str, Any]:
        """Run one step; failures propagate once retries are exhausted"""
        action_type = step.get('action', '').lower()

        if action_type not in self.action_handlers:
            raise ValueError(f"Unknown action type: {action_type}")

        handler = self.action_handlers[action_type]
        # Clicks can submit forms, so they never repeat
        attempts = 1 if action_type == 'click' or not step.get('retry', True) else max(1, self.retry_count)

        for attempt in range(attempts):
            try:
                result = await handler(session, step)
                result["attempts"] = attempt + 1
                return result
            except ElementNotFound:
                if attempt < attempts - 1:
                    logger.debug("Retrying %s on %s", action_type, step.get('target'))
                    await asyncio.sleep(self.retry_delay)
                    continue
                raise

    async def execute_all(self, session, steps: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        results = []
        for step in steps:
            results.append(await self.execute(session, step))
        return results

    async def _execute_navigate(self, session, step: Dict) -> Dict:
        await session.navigate(step['target'])
        return {"success": True, "url": session.current_url()}

    async def _execute_fill(self, session, step: Dict) -> Dict:
        await session.fill(step['target'], step.get('value', ''))
        return {"success": True, "filled": step.get('field', step['target'])}

    async def _execute_check(self, session, step: Dict) -> Dict:
        await session.check(step['target'])
        return {"success": True, "checked": step['target']}

    async def _execute_select(self, session, step: Dict) -> Dict:
        await session.select_option(step['target'], step['value'])
        return {"success": True, "selected": step['value'], "target": step['target']}

    async def _execute_click(self, session, step: Dict) -> Dict:
        await session.click(step['target'])
        return {"success": True, "clicked": step['target'], "new_url": session.current_url()}

    async def _execute_wait(self, session, step: Dict) -> Dict:
        timeout_ms = int(step.get('timeout_ms', 5000))
        try:
            await session.wait_for(step['target'], timeout_ms)
        except ElementNotFound as e:
            if step.get('navigation'):
                raise NavigationTimeout(
                    f"{step['target']} did not appear within {timeout_ms}ms",
                    url=session.current_url()
                ) from e
            raise
        return {"success": True, "waited_for": step['target']}
