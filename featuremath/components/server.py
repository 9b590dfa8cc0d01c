"""
Server component for featuremath.

This module provides a FastAPI server exposing the featuremath analyses
(statistics, correlation, distributions, normalization and PCA) over JSON.
The server holds no state; every request is computed from its body.
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

import fastapi
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from featuremath import __version__
from featuremath.components.config import Config, ConfigManager
from featuremath.errors import DimensionMismatch, FeatureMathError
from featuremath.math.corr import compute_correlation, hierarchical_order
from featuremath.math.distribution import histogram, kernel_density_estimate
from featuremath.math.expression import validate_custom_transform
from featuremath.math.named_matrix import FeatureMatrix
from featuremath.math.normalization import (
    NormalizationSpec, has_inverse, inverse_transform_values, known_inverse, transform_values
)
from featuremath.math.pca import fit_pca, optimal_components
from featuremath.math.stats import ColumnStats, calculate_stats, compute_stats

# Set up logging
logger = logging.getLogger(__name__)


# Define API models
class FeaturesRequest(BaseModel):
    """Named feature vectors, all of the same length."""

    features: Dict[str, List[float]]


class CorrelationRequest(FeaturesRequest):
    """Correlation request model."""

    cluster: bool = False


class HistogramRequest(BaseModel):
    """Histogram request model."""

    values: List[float]
    num_bins: Optional[int] = None
    value_range: Optional[Tuple[float, float]] = None


class KDERequest(BaseModel):
    """Kernel density request model."""

    values: List[float]
    bandwidth: Optional[float] = None
    n_points: Optional[int] = None


class PCARequest(FeaturesRequest):
    """PCA request model."""

    n_components: Optional[int] = None


class SpecModel(BaseModel):
    """Normalization spec model."""

    type: str = 'none'
    expression: Optional[str] = None
    inverse_expression: Optional[str] = None


class StatsModel(BaseModel):
    """Raw column statistics used by a transform."""

    min: float
    max: float
    mean: float
    std: float


class TransformRequest(BaseModel):
    """Normalization request model."""

    values: List[float]
    spec: SpecModel
    stats: Optional[StatsModel] = None
    inverse: bool = False


class ExpressionRequest(BaseModel):
    """Expression validation request model."""

    expression: str


class Server:
    """
    FastAPI server for featuremath.
    """

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize a server.

        Args:
            config: Configuration for the server
        """
        self.config = config or ConfigManager.get_config()

        # Create FastAPI app
        self.app = FastAPI(
            title="featuremath API",
            description="Dataset statistics, correlation, distributions, normalization and PCA",
            version=__version__
        )

        # Set up CORS
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_routes()
        self._setup_validation()
        self._setup_error_handling()

    def _setup_routes(self) -> None:
        """
        Set up API routes.
        """
        @self.app.get("/health")
        async def health_check():
            return {"status": "ok"}

        @self.app.post("/api/v1/stats")
        async def stats(request: FeaturesRequest):
            fmat = FeatureMatrix.from_vectors(request.features)
            return {name: s.to_dict() for name, s in calculate_stats(fmat).items()}

        @self.app.post("/api/v1/correlation")
        async def correlation(request: CorrelationRequest):
            corr = compute_correlation(FeatureMatrix.from_vectors(request.features))
            if request.cluster:
                corr = corr.reordered(hierarchical_order(corr))
            return corr.to_dict()

        @self.app.post("/api/v1/histogram")
        async def histogram_route(request: HistogramRequest):
            num_bins = request.num_bins if request.num_bins is not None else self.config.get('histogram.bins', 20)
            bins = histogram(request.values, num_bins, request.value_range)
            return {"bins": [b.to_dict() for b in bins]}

        @self.app.post("/api/v1/kde")
        async def kde_route(request: KDERequest):
            n_points = request.n_points if request.n_points is not None else self.config.get('kde.points', 100)
            x, y = kernel_density_estimate(request.values, request.bandwidth, n_points)
            return {"x": x.tolist(), "y": y.tolist()}

        @self.app.post("/api/v1/pca")
        async def pca_route(request: PCARequest):
            result = fit_pca(
                FeatureMatrix.from_vectors(request.features),
                n_components=request.n_components,
                max_iters=self.config.get('pca.max-iters', 1000),
                tolerance=self.config.get('pca.tolerance', 1e-10),
            )
            response = result.to_dict()
            response['suggested_components'] = optimal_components(
                result.model.cumulative_variance_ratio,
                self.config.get('pca.variance-threshold', 0.95),
            )
            return response

        @self.app.post("/api/v1/transform")
        async def transform(request: TransformRequest):
            spec = NormalizationSpec(
                type=request.spec.type,
                expression=request.spec.expression,
                inverse_expression=request.spec.inverse_expression,
            )
            if request.stats is not None:
                column_stats = ColumnStats(min=request.stats.min, max=request.stats.max,
                                           mean=request.stats.mean, std=request.stats.std)
            else:
                column_stats = compute_stats(request.values)

            if request.inverse:
                values = inverse_transform_values(request.values, column_stats, spec)
            else:
                values = transform_values(request.values, column_stats, spec)
            return {
                "values": values.tolist(),
                "stats": column_stats.to_dict(),
                "invertible": has_inverse(spec),
            }

        @self.app.post("/api/v1/expression/validate")
        async def validate_expression(request: ExpressionRequest):
            error = validate_custom_transform(request.expression)
            return {
                "valid": error is None,
                "error": error,
                "known_inverse": known_inverse(request.expression),
            }

    def _setup_validation(self) -> None:
        """
        Set up request validation.
        """
        @self.app.exception_handler(fastapi.exceptions.RequestValidationError)
        async def validation_exception_handler(request, exc):
            return JSONResponse(
                status_code=422,
                content={"detail": str(exc)}
            )

    def _setup_error_handling(self) -> None:
        """
        Set up error handling.
        """
        @self.app.exception_handler(FeatureMathError)
        async def feature_math_exception_handler(request, exc):
            status_code = 422 if isinstance(exc, DimensionMismatch) else 400
            return JSONResponse(
                status_code=status_code,
                content={"detail": str(exc), "error": type(exc).__name__}
            )

        @self.app.exception_handler(Exception)
        async def generic_exception_handler(request, exc):
            logger.exception("Unhandled exception")
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"}
            )

    def run(self) -> None:
        """
        Run the server in the foreground until interrupted.
        """
        import uvicorn

        port = self.config.get('server.port', 8080)
        host = self.config.get('server.host', 'localhost')
        logger.info(f"Server starting at http://{host}:{port}")

        # uvicorn doesn't accept the 'warn' alias
        log_level = self.config.get('logging.level', 'info')
        if log_level == 'warn':
            log_level = 'warning'

        uvicorn.run(
            self.app,
            host=host,
            port=port,
            log_level=log_level
        )


class ServerManager:
    """
    Singleton manager for the server.
    """

    _instance = None
    _lock = threading.RLock()

    @classmethod
    def get_server(cls, config: Optional[Config] = None) -> Server:
        """
        Get the server instance.

        Args:
            config: Configuration

        Returns:
            Server instance
        """
        with cls._lock:
            if cls._instance is None:
                cls._instance = Server(config)

            return cls._instance
