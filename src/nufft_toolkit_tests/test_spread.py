import weakref

import numpy as np
import pytest

import nufft_toolkit.error as ntk_error
import nufft_toolkit.kernel as ntk_kernel
import nufft_toolkit.spread as ntk_spread
import nufft_toolkit_tests.conftest as ct
import nufft_toolkit.util as ntk_util


class TestSpreader:
    def test_value_spread(self, x, N, spec, stack_shape, dtype):
        # output value matches ground truth.
        rng = np.random.default_rng(0)
        c = ct.random_strengths((*stack_shape, len(x)), dtype, rng)

        op = ntk_spread.Spreader(x, N, spec, nthreads=2)
        g = op.spread(c)
        g_gt = self._spread_gt(x, c, N, spec)

        assert g.shape == (*stack_shape, *N)
        assert ct.relclose(g, g_gt, len(N), self._tol(dtype))

    def test_value_interpolate(self, x, N, spec, stack_shape, dtype):
        # output value matches ground truth.
        rng = np.random.default_rng(0)
        g = ct.random_strengths((*stack_shape, *N), dtype, rng)

        op = ntk_spread.Spreader(x, N, spec, nthreads=2)
        c = op.interpolate(g)
        c_gt = self._interpolate_gt(x, g, N, spec)

        assert c.shape == (*stack_shape, len(x))
        assert ct.relclose(c, c_gt, 1, self._tol(dtype))

    def test_prec(self, x, N, spec, dtype):
        # output precision (not dtype!) matches input precision.
        rng = np.random.default_rng(0)
        op = ntk_spread.Spreader(x, N, spec)

        c = ct.random_strengths(len(x), dtype, rng, real=True)
        g = op.spread(c)
        assert g.dtype == ntk_util.TranslateDType(dtype).to_complex()

        g = ct.random_strengths(N, dtype, rng, real=True)
        c = op.interpolate(g)
        assert c.dtype == ntk_util.TranslateDType(dtype).to_complex()

    def test_math_adjoint(self, x, N, spec, stack_shape):
        # <spread(c), g> == <c, interpolate(g)>
        rng = np.random.default_rng(0)
        c = ct.random_strengths((*stack_shape, len(x)), np.complex128, rng)
        g = ct.random_strengths((*stack_shape, *N), np.complex128, rng)

        op = ntk_spread.Spreader(x, N, spec)
        lhs = ct.inner_product(op.spread(c), g, len(N))
        rhs = ct.inner_product(c, op.interpolate(g), 1)
        assert np.allclose(lhs, rhs)

    def test_horner(self, x, N, spec):
        # piecewise-polynomial evaluation tracks direct evaluation.
        rng = np.random.default_rng(0)
        c = ct.random_strengths(len(x), np.complex128, rng)

        g_direct = ntk_spread.spread(x, c, N, spec, kernel_eval="direct")
        g_horner = ntk_spread.spread(x, c, N, spec, kernel_eval="horner")
        assert ct.relclose(g_horner, g_direct, len(N), 10.0 ** (1 - spec.width))

    def test_nthreads(self, x, N, spec):
        # results are bit-identical for any thread count.
        rng = np.random.default_rng(0)
        c = ct.random_strengths((2, len(x)), np.complex128, rng)
        g = ct.random_strengths((2, *N), np.complex128, rng)

        kwargs = dict(max_subproblem_size=9)
        op_1 = ntk_spread.Spreader(x, N, spec, nthreads=1, **kwargs)
        op_n = ntk_spread.Spreader(x, N, spec, nthreads=5, **kwargs)
        assert np.array_equal(op_1.spread(c), op_n.spread(c))
        assert np.array_equal(op_1.interpolate(g), op_n.interpolate(g))

    @pytest.mark.parametrize("spread_sort", [0, 1])
    def test_sort(self, x, N, spec, spread_sort):
        # point ordering only affects round-off.
        rng = np.random.default_rng(0)
        c = ct.random_strengths(len(x), np.complex128, rng)

        g = ntk_spread.spread(x, c, N, spec, spread_sort=spread_sort, max_subproblem_size=11, bin_size=4)
        g_gt = self._spread_gt(x, c, N, spec)
        assert ct.relclose(g, g_gt, len(N), 1e-12)

    def test_repeatable(self, x, N, spec):
        # a plan can be applied many times.
        rng = np.random.default_rng(0)
        c = ct.random_strengths(len(x), np.complex128, rng)
        op = ntk_spread.Spreader(x, N, spec)
        assert np.array_equal(op.spread(c), op.spread(c))

    def test_empty(self, N, spec):
        D = len(N)
        op = ntk_spread.Spreader(np.zeros((0, D)), N, spec)

        g = op.spread(np.zeros((3, 0), dtype=np.complex64))
        assert g.shape == (3, *N)
        assert g.dtype == np.complex64
        assert np.all(g == 0)

        c = op.interpolate(np.ones((3, *N)))
        assert c.shape == (3, 0)

    def test_boundary(self, spec):
        # -pi and +pi are the same point.
        N = (16, 20)
        x_lo = np.array([[-np.pi, 0.3], [1.0, -np.pi]])
        x_hi = np.array([[np.pi, 0.3], [1.0, np.pi]])
        c = np.array([1 + 2j, -0.5j])

        g_lo = ntk_spread.spread(x_lo, c, N, spec)
        g_hi = ntk_spread.spread(x_hi, c, N, spec)
        assert np.array_equal(g_lo, g_hi)

    def test_periodic(self, x, N, spec):
        # points are interpreted modulo 2pi.
        rng = np.random.default_rng(0)
        c = ct.random_strengths(len(x), np.complex128, rng)
        shift = 2 * np.pi * rng.choice([-1, 1], size=x.shape)

        g = ntk_spread.spread(x, c, N, spec)
        g_shift = ntk_spread.spread(x + shift, c, N, spec)
        assert ct.relclose(g_shift, g, len(N), 1e-12)

    def test_chkbnds(self, spec):
        x = np.r_[0.1, 4 * np.pi]
        with pytest.raises(ntk_error.ConfigurationError):
            ntk_spread.Spreader(x, 16, spec)

        op = ntk_spread.Spreader(x, 16, spec, chkbnds=False)
        assert np.allclose(op.cfg.u[:, 0].min(), 0.0)

    @pytest.mark.parametrize("bad", [np.nan, np.inf, -np.inf])
    def test_non_finite(self, spec, bad):
        x = np.r_[0.1, bad]
        with pytest.raises(ntk_error.ConfigurationError):
            ntk_spread.Spreader(x, 16, spec, chkbnds=False)

    def test_small_grid(self, spec):
        with pytest.raises(ntk_error.ConfigurationError):
            ntk_spread.Spreader(np.r_[0.1], spec.width - 1, spec)

    def test_bad_shape(self, x, N, spec):
        op = ntk_spread.Spreader(x, N, spec)
        with pytest.raises(ntk_error.ConfigurationError):
            op.spread(np.zeros(len(x) + 1))
        with pytest.raises(ntk_error.ConfigurationError):
            op.interpolate(np.zeros(tuple(n + 1 for n in N)))

    def test_bad_points(self, spec):
        with pytest.raises(ntk_error.ConfigurationError):
            ntk_spread.Spreader(np.zeros((5, 4)), 16, spec)  # D=4
        with pytest.raises(ntk_error.ConfigurationError):
            ntk_spread.Spreader(np.zeros(5, dtype=complex), 16, spec)

    def test_duplicate(self, N, spec):
        # coincident points are spread individually.
        D = len(N)
        x0 = np.full((1, D), 0.7)
        a, b = 1 - 2j, 0.5 + 1j

        g_2 = ntk_spread.spread(np.r_[x0, x0], np.r_[a, b], N, spec)
        g_1 = ntk_spread.spread(x0, np.r_[a + b], N, spec)
        assert ct.relclose(g_2, g_1, D, 1e-12)

        rng = np.random.default_rng(0)
        g = ct.random_strengths(N, np.complex128, rng)
        c = ntk_spread.interpolate(np.r_[x0, x0], g, spec)
        assert np.allclose(c[0], c[1], rtol=1e-14, atol=0)

    @pytest.mark.parametrize("nthreads", [1, 2, 4])
    def test_live_subgrids(self, spec, monkeypatch, nthreads):
        # unsorted subproblems span the whole grid: at most `nthreads` sub-grids may coexist.
        rng = np.random.default_rng(0)
        x = ct.random_points(200, 1, rng)
        c = ct.random_strengths(len(x), np.complex128, rng)
        op = ntk_spread.Spreader(x, 64, spec, spread_sort=0, max_subproblem_size=20, nthreads=nthreads)
        assert len(op.cfg.bound) - 1 == 10

        refs, n_alive = [], []
        spread_subproblem = ntk_spread.Spreader._spread_subproblem

        def tracked(self, c, q):
            n_alive.append(sum(r() is not None for r in refs))
            g_q = spread_subproblem(self, c, q)
            refs.append(weakref.ref(g_q))
            return g_q

        monkeypatch.setattr(ntk_spread.Spreader, "_spread_subproblem", tracked)
        g = op.spread(c)

        assert len(n_alive) == 10
        assert max(n_alive) <= nthreads
        assert ct.relclose(g, self._spread_gt(x, c, (64,), spec), 1, 1e-12)

    def test_subgrid_alloc(self, spec, monkeypatch):
        # sub-grid allocation failures report the attempted shape.
        op = ntk_spread.Spreader(np.r_[0.1, 0.2], 32, spec)
        sub_shape = (1, *op.cfg.sub_num[0])
        assert sub_shape != (1, 32)

        zeros = np.zeros

        def _fail(shape, dtype=float):
            if tuple(shape) == sub_shape:
                raise MemoryError
            return zeros(shape, dtype=dtype)

        monkeypatch.setattr(np, "zeros", _fail)
        with pytest.raises(ntk_error.ResourceExhaustionError) as info:
            op.spread(np.ones(2))
        assert info.value.shape == sub_shape

    # Helper functions --------------------------------------------------------
    @staticmethod
    def _tol(dtype) -> float:
        return {
            np.dtype(np.float32): 1e-5,
            np.dtype(np.float64): 1e-12,
        }[np.dtype(dtype)]

    @staticmethod
    def _weights(x, N, spec) -> list[np.ndarray]:
        # per-axis periodized kernel samples: W[d][m, l] = \sum_{p} phi(l + p N_d - u[m, d])
        u = ntk_spread.fold(x, np.array(N))
        W = []
        for d, _N in enumerate(N):
            z = np.arange(_N) - u[:, [d]]  # (M, N_d)
            W.append(sum(ntk_kernel.evaluate_kernel(z + p * _N, spec) for p in (-1, 0, 1)))
        return W

    @classmethod
    def _spread_gt(cls, x, c, N, spec) -> np.ndarray:
        W = cls._weights(x, N, spec)
        ind = "abc"[: len(N)]
        subs = ",".join(["...m", *[f"m{i}" for i in ind]]) + f"->...{ind}"
        return np.einsum(subs, c.astype(np.complex128), *W)

    @classmethod
    def _interpolate_gt(cls, x, g, N, spec) -> np.ndarray:
        W = cls._weights(x, N, spec)
        ind = "abc"[: len(N)]
        subs = ",".join([f"...{ind}", *[f"m{i}" for i in ind]]) + "->...m"
        return np.einsum(subs, g.astype(np.complex128), *W)

    # Fixtures ----------------------------------------------------------------
    @pytest.fixture(params=[1, 2, 3])
    def D(self, request) -> int:
        return request.param

    @pytest.fixture
    def N(self, D) -> tuple[int]:
        return (24, 20, 18)[:D]

    @pytest.fixture
    def spec(self) -> ntk_kernel.KernelSpec:
        return ntk_kernel.derive_kernel(1e-6)

    @pytest.fixture(params=[False, True])
    def x(self, D, request) -> np.ndarray:
        rng = np.random.default_rng(4)
        return ct.random_points(60, D, rng, clustered=request.param)

    @pytest.fixture(
        params=[
            (),
            (1,),
            (3, 2),
        ]
    )
    def stack_shape(self, request) -> tuple[int]:
        return request.param  # (...)

    @pytest.fixture(
        params=[
            np.float32,
            np.float64,
        ]
    )
    def dtype(self, request) -> np.dtype:
        return np.dtype(request.param)


class TestFold:
    def test_value(self):
        N = np.r_[10, 16]
        x = np.array(
            [
                [-np.pi, 0],
                [0, np.pi],
                [np.pi / 2, -np.pi / 2],
                [3 * np.pi, -3 * np.pi],
            ]
        )
        u = ntk_spread.fold(x, N)
        u_gt = np.array(
            [
                [5, 0],
                [0, 8],
                [2.5, 12],
                [5, 8],
            ]
        )
        assert np.allclose(u, u_gt)
        assert np.all((0 <= u) & (u < N))

    def test_round_up(self):
        # coordinates just below 2pi never fold onto N.
        N = np.r_[64]
        x = np.r_[-np.nextafter(0, 1), np.nextafter(2 * np.pi, 0)].reshape(-1, 1)
        u = ntk_spread.fold(x, N)
        assert np.all((0 <= u) & (u < N))
