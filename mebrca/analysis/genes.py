"""Selection of the relevant genes from the Elastic Net coefficients."""

import logging
import re
from collections import Counter

import pandas as pd

logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"
LEADING_TOKEN = re.compile(r"[A-Za-z0-9]+")


def leading_symbol(symbol):
    """Returns the leading alphanumeric token of a gene symbol string.

    Annotations may list several genes, e.g. 'RPL23A;SNORD42B'. Only the
    first token is kept.

    Examples:
        >>> leading_symbol("RPL23A;SNORD42B")
        'RPL23A'
        >>> leading_symbol(None) is None
        True
    """
    if symbol is None or pd.isna(symbol):
        return None
    match = LEADING_TOKEN.search(str(symbol))
    return match.group(0) if match else None


def relevant_genes(coefficients, annotation=None):
    """Returns the probes with a non-zero coefficient and their gene symbol.

    Args:
        coefficients (pd.Series): Coefficient per probe. An intercept entry,
            if present, is ignored.
        annotation (pd.Series, optional): Probe -> gene symbol string.

    Returns:
        pd.DataFrame: Indexed by probe in input order with the columns
            'coefficient', 'gene_symbol' (raw annotation) and 'symbol'
            (leading token, probe id if there is no annotation).
    """
    coefficients = coefficients.drop(INTERCEPT, errors="ignore")
    selected = coefficients[coefficients != 0]
    if annotation is None:
        annotation = pd.Series(dtype=object)
    annotation = annotation[~annotation.index.duplicated(keep="first")]
    gene_symbol = annotation.reindex(selected.index)
    symbol = [
        leading_symbol(raw) or probe
        for probe, raw in zip(selected.index, gene_symbol)
    ]
    genes = pd.DataFrame(
        {
            "coefficient": selected.to_numpy(),
            "gene_symbol": gene_symbol.to_numpy(),
            "symbol": symbol,
        },
        index=pd.Index(selected.index, name="probe"),
    )
    logger.info(
        "%d relevant probes mapping to %d gene symbols",
        len(genes),
        genes["symbol"].nunique(),
    )
    return genes


def plot_filenames(genes, suffix):
    """Returns a unique file name per probe based on its gene symbol.

    Symbols shared by several probes get the probe id appended, e.g.
    'BRCA1_cg00000001_survival.png', so no plot overwrites another. The
    result does not depend on which probe is processed first.

    Args:
        genes (pd.DataFrame): Output of `relevant_genes`.
        suffix (str): Appended to every name, including the file extension.

    Returns:
        dict: probe -> file name, in the order of `genes`.
    """
    counts = Counter(genes["symbol"])
    return {
        probe: (
            f"{symbol}{suffix}"
            if counts[symbol] == 1
            else f"{symbol}_{probe}{suffix}"
        )
        for probe, symbol in genes["symbol"].items()
    }
