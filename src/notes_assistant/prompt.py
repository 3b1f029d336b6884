"""
Handling of LLM prompts. We store the prompts as markdown template files in the
package directory ./prompts. A prompt can have template variables of the form
{{VAR_NAME}}. These then must be passed in to subst_prompt() to instantiate the
prompt.

Only double-brace {{variable_name}} syntax is substituted. Single braces are left
as literal text, so templates may contain JSON or code examples.
"""
import re
from functools import lru_cache
from importlib import resources

import notes_assistant


class PromptFileError(Exception):
    pass


class PromptVarError(Exception):
    """Thrown when a prompt variable is referenced in a prompt, but not provided in the keyword arguments"""
    pass


PROMPT_VAR_RE=re.compile(r'\{\{([a-zA-Z_][a-zA-Z0-9_]*)\}\}')


@lru_cache(maxsize=None)
def _load_template(prompt_name: str) -> str:
    try:
        with resources.files(notes_assistant).joinpath(f"prompts/{prompt_name}.md").open() as f:
            return f.read()
    except Exception as e:
        raise PromptFileError(f"Could not load prompt {prompt_name}") from e


def subst_prompt(prompt_name:str,
                 **kwargs) -> str:
    """Load the specified prompt from its file and substitute any prompt variables of the form '{{identifier}}'
    from the keyword arguments. If a prompt variable referenced in the prompt is not provided,
    throws PromptVarError. Extra keyword arguments are ignored."""
    prompt_template = _load_template(prompt_name)

    def replace_var(match):
        var_name = match.group(1)
        if var_name not in kwargs:
            raise PromptVarError(f"Prompt variable '{var_name}' referenced in prompt but not provided in keyword arguments")
        return str(kwargs[var_name])

    return PROMPT_VAR_RE.sub(replace_var, prompt_template)
