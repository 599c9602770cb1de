"""Command-line interface for running the mebrca analysis.

Usage:
    $ mebrca                        # Run with default settings
    $ mebrca -o /path/to/results    # Specify output directory
             -d /path/to/cache      # Specify GDC download cache
             -n 50                  # Analyze 50 patients
    $ mebrca --help                 # Show all parameters

"""

import argparse
import re
import textwrap
from pathlib import Path

from mebrca.utils.varia import CONFIG, MEBRCA_TMP_DIR, get_app_version


def absolute_path(path):
    """Converts a relative path to an absolute path."""
    return Path(path).expanduser().absolute()


class SmartFormatter(argparse.ArgumentDefaultsHelpFormatter):
    """Keeps new lines and doesn't break words, but still wraps lines.

    Source: https://gist.github.com/panzi/b4a51b3968f67b9ff4c99459fb9c5b3d
    """

    def _split_lines(self, text, width):
        lines = []
        for line in textwrap.dedent(text).strip().split("\n"):
            ident = re.match(r"^\s*", line).group(0)
            curr_line = [ident] if ident else []
            curr_len = len(ident)
            for word in line.split():
                if curr_line and curr_len + len(word) + 1 > width:
                    lines.append(" ".join(curr_line))
                    curr_line = [ident] if ident else []
                    curr_len = len(ident)
                curr_line.append(word)
                curr_len += len(word) + 1
            lines.append(" ".join(curr_line))
        return lines

    def _fill_text(self, text, width, indent):
        return "\n".join(
            indent + line
            for line in self._split_lines(text, width - len(indent))
        )


def parse_args(argv=None):
    """Parses command line arguments."""
    parser = argparse.ArgumentParser(
        description=(
            """
            mebrca: tumor vs. normal methylation analysis
            ---------------------------------------------

            Downloads TCGA methylation data from the GDC for patients that also have expression data, separates tumor from normal tissue with Elastic Net and k-NN classifiers, clusters the samples by the selected genes and relates each gene to overall survival.
            """
        ),
        epilog=(
            """
            Example usage:

                mebrca -o ~/mebrca/results -d ~/mebrca/gdc -n 100 -j 4
            """
        ),
        formatter_class=SmartFormatter,
    )
    parser.add_argument(
        "-o",
        "--output_dir",
        type=absolute_path,
        default=MEBRCA_TMP_DIR / "analysis",
        help="Directory for plots and tables.",
    )
    parser.add_argument(
        "-d",
        "--cache_dir",
        type=absolute_path,
        default=MEBRCA_TMP_DIR / "gdc",
        help="Directory where downloaded GDC files are cached.",
    )
    parser.add_argument(
        "-p",
        "--project",
        type=str,
        default=CONFIG["cohort"]["project"],
        help="GDC project identifier.",
    )
    parser.add_argument(
        "-n",
        "--n_patients",
        type=int,
        default=CONFIG["cohort"]["n_patients"],
        help="Number of patients with both data modalities to analyze.",
    )
    parser.add_argument(
        "-A",
        "--annotation",
        type=absolute_path,
        help=(
            "Probe annotation table (tab-separated, optionally gz). If not "
            "given, the configured annotation is downloaded."
        ),
    )
    parser.add_argument(
        "-s",
        "--seed",
        type=int,
        default=CONFIG["features"]["seed"],
        help="Random seed.",
    )
    parser.add_argument(
        "--n_lambda",
        type=int,
        default=CONFIG["models"]["n_lambda"],
        help=(
            "Length of the Elastic Net penalty path. Lower values shorten "
            "the run time on full arrays."
        ),
    )
    parser.add_argument(
        "--cv_folds",
        type=int,
        default=CONFIG["models"]["cv_folds"],
        help="Cross-validation folds for the Elastic Net penalty.",
    )
    parser.add_argument(
        "-j",
        "--n_jobs",
        type=int,
        default=CONFIG["survival"]["n_jobs"],
        help="Processes used for the survival analysis.",
    )
    parser.add_argument(
        "-f",
        "--image_format",
        type=str,
        choices=["png", "svg", "pdf", "html"],
        default=CONFIG["plots"]["image_format"],
        help="File format of the saved figures.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        type=int,
        choices=[0, 1, 2],
        default=1,
        help="Verbosity: 0 = warnings, 1 = info, 2 = debug.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {get_app_version()}",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Starts the analysis."""
    args = parse_args(argv)

    # Import here to make the CLI more responsive.
    from mebrca import CohortFilter, GDCSource, MethylSurvivalAnalysis

    methylation_filter = CohortFilter.from_config(
        CONFIG["cohort"], project=args.project
    )
    source = GDCSource(cache_dir=args.cache_dir, annotation=args.annotation)
    analysis = MethylSurvivalAnalysis(
        source,
        output_dir=args.output_dir,
        methylation_filter=methylation_filter,
        n_patients=args.n_patients,
        seed=args.seed,
        n_lambda=args.n_lambda,
        cv_folds=args.cv_folds,
        n_jobs=args.n_jobs,
        image_format=args.image_format,
        verbose=args.verbose,
    )
    analysis.run()
    print(analysis.evaluation.to_string())
    return analysis


if __name__ == "__main__":
    main()
