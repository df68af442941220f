"""
Decision-service tool schema.
Provider-neutral definitions ({name, description, parameters}); the clients
translate them to their wire format.
"""

from ..core.models import UserProfile


PROFILE_KEYS = [field.alias for field in UserProfile.model_fields.values()]


OPERATOR_TOOLS = [
    {
        "name": "click",
        "description": "Click on an interactive element (button, link, checkbox, etc). Use the action id from the page map.",
        "parameters": {
            "type": "object",
            "properties": {
                "actionId": {
                    "type": "string",
                    "description": "The id of the action to click from the page map"
                },
                "description": {
                    "type": "string",
                    "description": "Brief description of what this click should accomplish"
                }
            },
            "required": ["actionId", "description"]
        }
    },
    {
        "name": "type_text",
        "description": "Type text into an input field. Use the field id from the page map.",
        "parameters": {
            "type": "object",
            "properties": {
                "fieldId": {
                    "type": "string",
                    "description": "The id of the input field from the page map"
                },
                "text": {
                    "type": "string",
                    "description": "The text to type into the field"
                },
                "clearFirst": {
                    "type": "boolean",
                    "description": "Whether to clear existing content before typing (default true)"
                }
            },
            "required": ["fieldId", "text"]
        }
    },
    {
        "name": "select_option",
        "description": "Select an option from a dropdown/select element.",
        "parameters": {
            "type": "object",
            "properties": {
                "fieldId": {
                    "type": "string",
                    "description": "The id of the select field"
                },
                "value": {
                    "type": "string",
                    "description": "The value or visible text of the option to select"
                }
            },
            "required": ["fieldId", "value"]
        }
    },
    {
        "name": "scroll",
        "description": "Scroll the page in a direction.",
        "parameters": {
            "type": "object",
            "properties": {
                "direction": {
                    "type": "string",
                    "enum": ["up", "down", "top", "bottom"],
                    "description": "Direction to scroll"
                },
                "amount": {
                    "type": "string",
                    "enum": ["small", "medium", "large", "full"],
                    "description": "Amount to scroll (default medium)"
                }
            },
            "required": ["direction"]
        }
    },
    {
        "name": "read_section",
        "description": "Read out the content of a specific section on the page.",
        "parameters": {
            "type": "object",
            "properties": {
                "sectionId": {
                    "type": "string",
                    "description": "The section id from the page map"
                }
            },
            "required": ["sectionId"]
        }
    },
    {
        "name": "read_page_summary",
        "description": "Read a summary of the current page including title, main headings, and available actions.",
        "parameters": {"type": "object", "properties": {}, "required": []}
    },
    {
        "name": "focus_element",
        "description": "Move keyboard focus to a specific element.",
        "parameters": {
            "type": "object",
            "properties": {
                "actionId": {
                    "type": "string",
                    "description": "The action or field id of the element to focus"
                }
            },
            "required": ["actionId"]
        }
    },
    {
        "name": "fill_form_with_profile",
        "description": "Fill multiple form fields using the user profile data. Matches fields by label similarity.",
        "parameters": {
            "type": "object",
            "properties": {
                "fieldsToFill": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "fieldId": {"type": "string"},
                            "profileKey": {"type": "string", "enum": PROFILE_KEYS}
                        },
                        "required": ["fieldId", "profileKey"]
                    },
                    "description": "Field to profile-key mappings"
                }
            },
            "required": ["fieldsToFill"]
        }
    },
    {
        "name": "request_confirmation",
        "description": "Request explicit verbal confirmation from the user before proceeding with a risky action.",
        "parameters": {
            "type": "object",
            "properties": {
                "actionDescription": {
                    "type": "string",
                    "description": "Clear description of the action that needs confirmation"
                },
                "actionId": {
                    "type": "string",
                    "description": "The action id that will be clicked after confirmation"
                }
            },
            "required": ["actionDescription", "actionId"]
        }
    },
    {
        "name": "go_back",
        "description": "Navigate back to the previous page in browser history.",
        "parameters": {"type": "object", "properties": {}, "required": []}
    },
    {
        "name": "wait",
        "description": "Wait for a short period for the page to load or update.",
        "parameters": {
            "type": "object",
            "properties": {
                "duration": {
                    "type": "number",
                    "description": "Duration to wait in milliseconds (default 1000, max 5000)"
                },
                "reason": {
                    "type": "string",
                    "description": "Why we are waiting"
                }
            },
            "required": ["reason"]
        }
    },
    {
        "name": "navigate_to",
        "description": "Navigate the browser to a specific URL, when the user asks to go to a website, page or URL.",
        "parameters": {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": 'Absolute URL like "https://example.com" or a path like "/feed"'
                }
            },
            "required": ["url"]
        }
    },
    {
        "name": "scan_form",
        "description": (
            "Scan the current page for form questions. Returns every question with its type, "
            "options, current answer and the ids needed to answer it. Use this first whenever "
            "the user wants to fill in a form."
        ),
        "parameters": {"type": "object", "properties": {}, "required": []}
    },
    {
        "name": "answer_form_question",
        "description": (
            "Answer one form question by its questionId from scan_form. For radio or dropdown "
            "questions give the option label; for checkboxes comma-separated labels; for text "
            "questions the text to type."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "questionId": {
                    "type": "string",
                    "description": "The questionId from scan_form results"
                },
                "answer": {
                    "type": "string",
                    "description": "The answer to give"
                }
            },
            "required": ["questionId", "answer"]
        }
    },
    {
        "name": "audit_accessibility",
        "description": (
            "Check the current page for accessibility problems. Reports a score from 0 to 100 "
            "and the issues found (missing image text, low contrast, tiny text, unlabeled "
            "inputs, moving content, cluttered layout, tight spacing). Use when the user asks "
            "whether the page is accessible or hard to read."
        ),
        "parameters": {"type": "object", "properties": {}, "required": []}
    },
]

TOOL_NAMES = {tool["name"] for tool in OPERATOR_TOOLS}

# The page reloads; the tab reconnects with a fresh session
NAVIGATING_TOOLS = {"navigate_to", "go_back"}

# Handled by the orchestrator, never sent to the page
SERVER_TOOLS = {"fill_form_with_profile", "request_confirmation"}
