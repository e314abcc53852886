from typing import Optional


class EtchError(Exception):
    # base exception for all etch errors.
    pass

class ConfigError(EtchError):
    # errors related to render options and config files.
    pass

class TemplateSyntaxError(EtchError):
    # template source or generated code that cannot be compiled.
    def __init__(self, message: str, position: Optional[int] = None,
                 line: Optional[int] = None, column: Optional[int] = None):
        super().__init__(message)
        self.position = position
        self.line = line
        self.column = column

class TemplateRuntimeError(EtchError):
    # errors raised while evaluating tag code against the data.
    pass

class TemplateNotFoundError(EtchError):
    # unknown named template or missing template file.
    pass
