"""
Main entry point for featuremath.

Summarizes a whitespace-delimited data file as JSON, or starts the HTTP
server.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional

from featuremath.components.config import Config, ConfigManager, load_config_file
from featuremath.data.loader import load_dataset
from featuremath.errors import FeatureMathError
from featuremath.math.corr import compute_correlation
from featuremath.math.distribution import histogram
from featuremath.math.named_matrix import FeatureMatrix
from featuremath.math.pca import fit_pca, optimal_components
from featuremath.math.stats import calculate_stats

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO') -> None:
    """
    Set up logging.

    Args:
        level: Logging level
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )


def parse_args(argv=None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description='featuremath: dataset statistics, correlation and PCA')

    parser.add_argument(
        'data_file',
        nargs='?',
        help='Whitespace-delimited data file to summarize'
    )

    parser.add_argument(
        '--config',
        help='Path to configuration file'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (default: logging.level from configuration)'
    )

    parser.add_argument(
        '--components',
        type=int,
        help='Number of principal components (default: all)'
    )

    parser.add_argument(
        '--bins',
        type=int,
        help='Histogram bins per feature'
    )

    parser.add_argument(
        '--serve',
        action='store_true',
        help='Start the HTTP server'
    )

    parser.add_argument(
        '--port',
        type=int,
        help='Server port'
    )

    parser.add_argument(
        '--host',
        help='Server host'
    )

    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Collect configuration overrides from a config file and the command line.
    """
    overrides: Dict[str, Any] = {}

    if args.config:
        overrides.update(load_config_file(args.config))

    if args.port:
        overrides.setdefault('server', {})['port'] = args.port

    if args.host:
        overrides.setdefault('server', {})['host'] = args.host

    if args.bins:
        overrides.setdefault('histogram', {})['bins'] = args.bins

    if args.log_level:
        overrides.setdefault('logging', {})['level'] = args.log_level.lower()

    return overrides


def summarize(fmat: FeatureMatrix, config: Config, n_components: Optional[int] = None) -> Dict[str, Any]:
    """
    Compute the JSON summary of a dataset.

    Args:
        fmat: Dataset to summarize
        config: Configuration (histogram bins, PCA settings)
        n_components: Number of principal components (default: all)

    Returns:
        Dictionary with samples, features, stats, histograms, correlation and pca
    """
    bins = config.get('histogram.bins', 20)

    summary: Dict[str, Any] = {
        'samples': fmat.n_samples,
        'features': fmat.colnames(),
        'stats': {name: s.to_dict() for name, s in calculate_stats(fmat).items()},
        'histograms': {
            name: [b.count for b in histogram(values, bins)]
            for name, values in fmat.vectors()
        },
        'correlation': compute_correlation(fmat).to_dict(),
    }

    if fmat.n_samples >= 2:
        result = fit_pca(
            fmat,
            n_components=n_components,
            max_iters=config.get('pca.max-iters', 1000),
            tolerance=config.get('pca.tolerance', 1e-10),
        )
        model = result.model
        summary['pca'] = {
            'eigenvalues': model.eigenvalues.tolist(),
            'explained_variance_ratio': model.explained_variance_ratio.tolist(),
            'cumulative_variance_ratio': model.cumulative_variance_ratio.tolist(),
            'suggested_components': optimal_components(
                model.cumulative_variance_ratio,
                config.get('pca.variance-threshold', 0.95),
            ),
        }
    else:
        logger.warning("Skipping PCA: it needs at least 2 samples")

    return summary


def main(argv=None) -> int:
    """
    Main entry point.
    """
    # Parse arguments
    args = parse_args(argv)

    # Initialize configuration
    config = ConfigManager.get_config(build_overrides(args))

    # Set up logging
    setup_logging(args.log_level or config.get('logging.level', 'warn'))

    if args.serve:
        from featuremath.components.server import ServerManager

        try:
            ServerManager.get_server(config).run()
        except KeyboardInterrupt:
            pass
        return 0

    if not args.data_file:
        logger.error("Nothing to do: give a data file or --serve")
        return 2

    try:
        fmat = load_dataset(args.data_file)
        summary = summarize(fmat, config, args.components)
    except (FileNotFoundError, FeatureMathError) as e:
        logger.error(str(e))
        return 1

    json.dump(summary, sys.stdout, indent=2)
    sys.stdout.write('\n')
    return 0


if __name__ == '__main__':
    sys.exit(main())
