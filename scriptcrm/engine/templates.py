"""
Template Catalog - seed content for new scripts, keyed by (type, objective).

The built-in table lives in DEFAULT_TEMPLATES. The service never reads it
directly: it is handed a TemplateCatalog at startup, so tests and deployments
can supply their own.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES: Dict[str, Dict[str, Dict[str, Any]]] = {
    'call': {
        'lead_generation': {
            'opening': "Hi {firstName}, this is {agentName} from {companyName}. I hope I'm not catching you at a bad time?",
            'main_points': [
                "I'm reaching out because we help companies like {companyName} {value_proposition}",
                "I'd love to share how we've helped similar businesses {specific_benefit}",
                "Would you be open to a brief 15-minute conversation to explore this?",
            ],
            'objection_handling': {
                'not_interested': "I understand, {firstName}. Many of our best clients said the same thing initially. What if I could show you {specific_result} in just 10 minutes?",
                'too_busy': "I completely understand you're busy. That's exactly why this could be valuable - it's designed to {time_saving_benefit}. When would be a better time?",
                'already_have_solution': "That's great that you have something in place. I'm curious, how well is it working for {specific_pain_point}?",
            },
            'closing': "Perfect! I'll send you a calendar link right after this call. Looking forward to our conversation, {firstName}.",
        },
        'appointment_setting': {
            'opening': "Hi {firstName}, this is {agentName} calling about your interest in {service}.",
            'main_points': [
                "I wanted to follow up on your inquiry and see if you had any questions",
                "Based on what you shared, I think we could really help with {specific_need}",
                "I'd like to schedule a time for you to speak with one of our specialists",
            ],
            'objection_handling': {
                'need_to_think': "Of course, this is an important decision. What specific concerns do you have that I might be able to address?",
                'need_spouse_approval': "That makes perfect sense. Would it be helpful if your spouse joined the call so they can hear the details too?",
            },
            'closing': "Great! Let me get you scheduled. What works better for you, mornings or afternoons?",
        },
    },
    'sms': {
        'lead_generation': {
            'main_points': [
                "Hi {firstName}! {agentName} from {companyName}. Saw your business and thought you might be interested in {value_proposition}.",
                "We've helped similar companies {specific_benefit}. Worth a quick chat?",
                "Reply YES for more info or STOP to opt out.",
            ],
        },
        'follow_up': {
            'main_points': [
                "Hi {firstName}, following up on our conversation about {topic}.",
                "Did you have a chance to {specific_action}?",
                "Happy to answer any questions. Reply or call {phone_number}.",
            ],
        },
    },
    'email': {
        'lead_generation': {
            'opening': "Hi {firstName},",
            'main_points': [
                "I hope this email finds you well. I'm reaching out because {reason_for_contact}.",
                "We specialize in helping companies like {companyName} {value_proposition}.",
                "I'd love to share how we've helped {similar_company} achieve {specific_result}.",
            ],
            'closing': "Would you be open to a brief call to discuss how this might benefit {companyName}?\n\nBest regards,\n{agentName}",
        },
    },
}


class TemplateCatalog:
    """
    Read-only (type, objective) -> content lookup.
    Every template handed out is a deep copy, so callers may edit it freely.
    """

    def __init__(self, templates: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        source = DEFAULT_TEMPLATES if templates is None else templates
        self._templates = copy.deepcopy(source)
        logger.debug(f"TemplateCatalog loaded with {len(self.pairs())} templates")

    def pairs(self) -> List[Tuple[str, str]]:
        return [
            (script_type, objective)
            for script_type, by_objective in self._templates.items()
            for objective in by_objective
        ]

    def get_template(self, script_type: str, objective: str) -> Optional[Dict[str, Any]]:
        """Content for (type, objective), or None when there is no such template."""
        template = self._templates.get(script_type, {}).get(objective)
        if template is None:
            logger.debug(f"get_template: no template for type={script_type} objective={objective}")
            return None
        return copy.deepcopy(template)

    def list_templates(self, script_type: Optional[str] = None, objective: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        All templates matching the optional filters, in catalog order.
        Returns: list of {'type', 'objective', 'template'} dicts
        """
        return [
            {'type': t, 'objective': o, 'template': self.get_template(t, o)}
            for t, o in self.pairs()
            if (script_type is None or t == script_type)
            and (objective is None or o == objective)
        ]

    def __contains__(self, key) -> bool:
        script_type, objective = key
        return objective in self._templates.get(script_type, {})

    def __len__(self) -> int:
        return len(self.pairs())
