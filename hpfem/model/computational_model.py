from typing import List, Optional
import logging

from ..logs import TqdmLoggingHandler


__all__ = ['ComputationalModel', ]


class ComputationalModel:
    def __init__(self, pbar_log=False, log_level="WARNING"):
        self.pbar_log = pbar_log
        self.logger = logging.getLogger(self.__class__.__name__)
        self.logger.propagate = False
        self.logger.setLevel(log_level)

        if not self.logger.handlers:
            if pbar_log:
                self.logger.addHandler(TqdmLoggingHandler())
            else:
                from ..logs import handler
                self.logger.addHandler(handler)

    @classmethod
    def help(cls, name: Optional[str] = None, /, full_docs=False):
        """Return a help string for the public methods of the class.

        Parameters:
            name (str | None, optional): a single method to describe.
            full_docs (bool, optional): show the whole docstring instead of
                its first line.
        """
        names = [name] if name is not None else \
            [s for s in dir(cls) if not s.startswith('_')]
        info: List[str] = []
        for attr_name in names:
            attr = getattr(cls, attr_name, None)
            if not callable(attr):
                continue
            doc = attr.__doc__
            if doc is None:
                doc = 'No description'
            elif full_docs:
                doc = doc.strip()
            else:
                doc = doc.strip().split('\n')[0]
            info.append(attr_name + '\n    ' + doc)
        return '\n\n'.join(info)
