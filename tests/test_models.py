"""
Tests for the CompAE core: weight holder, inputs, neurons and network.
"""

import pytest
import torch

from compae import (
    CompAENetwork,
    CompAENeuron,
    ConfigurationError,
    DegenerateNormalization,
    ImageNetwork,
    ImageShapeError,
    IncompleteImageError,
    NetworkConfig,
    NeuronicInputs,
    NormalizationPolicy,
    PixelOutOfRangeError,
    WeightHolder,
    constant_weights,
)

from conftest import load_grid, sequence_sampler


class TestNormalizationPolicy:
    """Test the named normalization choices."""

    def test_defaults(self):
        policy = NormalizationPolicy()
        assert policy.activation == "weight_sum"
        assert policy.accumulation == "per_image"
        assert policy.pooling == "pooled"
        assert policy.on_degenerate == "zero"

    @pytest.mark.parametrize("field,value", [
        ("activation", "cube_root"),
        ("accumulation", "sometimes"),
        ("pooling", "global"),
        ("on_degenerate", "ignore"),
    ])
    def test_invalid_value_rejected(self, field, value):
        with pytest.raises(ConfigurationError):
            NormalizationPolicy(**{field: value})

    def test_weight_mass(self):
        weight_sum = torch.tensor(4.0)
        assert NormalizationPolicy().weight_mass(weight_sum).item() == 4.0
        sqrt_policy = NormalizationPolicy(activation="sqrt_weight_sum")
        assert sqrt_policy.weight_mass(weight_sum).item() == 2.0


class TestWeightHolder:
    """Test the pooled activation accumulator."""

    def test_increase_and_clear(self):
        holder = WeightHolder()
        assert holder.total().item() == 0.0

        holder.increase(0.25)
        holder.increase(torch.tensor(0.5))
        assert holder.total().item() == pytest.approx(0.75)

        holder.clear()
        assert holder.total().item() == 0.0

    def test_unit_pooling_reports_one(self):
        holder = WeightHolder(pooling="unit")
        holder.increase(3.0)
        assert holder.total().item() == 1.0


class TestNeuronicInputs:
    """Test per-pixel state and the NeuronicInput view."""

    @pytest.fixture
    def inputs(self):
        return NeuronicInputs(4)

    def test_view_reads_and_writes_layer(self, inputs):
        pixel = inputs[2]
        pixel.load_measure(0.5)
        pixel.accumulate_prediction(0.125)
        pixel.accumulate_prediction(0.125)

        assert inputs.measures[2].item() == 0.5
        assert pixel.measure() == 0.5
        assert pixel.accumulated_prediction() == pytest.approx(0.25)

        pixel.clear_prediction()
        assert inputs.accumulated_predictions[2].item() == 0.0

    def test_reconstruction_and_error(self, inputs):
        holder = WeightHolder()
        holder.increase(0.5)
        pixel = inputs[1]
        pixel.load_measure(1.0)
        pixel.accumulate_prediction(0.25)

        assert pixel.reconstruction(holder) == pytest.approx(0.5)
        pixel.cache_error(holder)
        assert pixel.error() == pytest.approx(-0.5)

    def test_zero_total_reconstructs_zero(self, inputs):
        holder = WeightHolder()
        inputs[0].accumulate_prediction(0.3)
        assert inputs[0].reconstruction(holder) == 0.0
        assert torch.all(inputs.reconstruction(holder) == 0)

    def test_zero_total_raises_under_raise_policy(self, raise_policy):
        inputs = NeuronicInputs(4, policy=raise_policy)
        with pytest.raises(DegenerateNormalization):
            inputs.cache_error(WeightHolder())

    def test_indexing(self, inputs):
        assert len(inputs) == 4
        assert inputs[-1].index == 3
        assert [pixel.index for pixel in inputs] == [0, 1, 2, 3]
        with pytest.raises(IndexError):
            inputs[4]


class TestCompAENeuron:
    """Test a single neuron's phases."""

    def test_wrong_weight_count_rejected(self):
        with pytest.raises(ConfigurationError):
            CompAENeuron("0", 0.1, 4, weight_init=lambda n: torch.ones(n + 1))

    def test_negative_initial_weights_rejected(self):
        with pytest.raises(ConfigurationError):
            CompAENeuron("0", 0.1, 4, weight_init=lambda n: -torch.ones(n))

    def test_compute_em_has_no_side_effects(self):
        inputs = NeuronicInputs(4)
        inputs.load_measures(torch.tensor([1.0, 1.0, 0.0, 0.0]))
        neuron = CompAENeuron("0", 0.1, 4, weight_init=constant_weights(0.5))

        assert neuron.compute_em(inputs).item() == pytest.approx(0.5)
        assert neuron.current_activation.item() == 0.0
        assert torch.all(inputs.accumulated_predictions == 0)

    def test_sqrt_weight_sum_policy(self):
        inputs = NeuronicInputs(4)
        inputs.load_measures(torch.tensor([1.0, 1.0, 0.0, 0.0]))
        neuron = CompAENeuron(
            "0", 0.1, 4,
            weight_init=constant_weights(0.5),
            policy=NormalizationPolicy(activation="sqrt_weight_sum"),
        )
        # weighted sum 1.0, weight sum 2.0
        assert neuron.compute_em(inputs).item() == pytest.approx(2.0 ** -0.5)

    def test_zero_weight_mass(self, raise_policy):
        inputs = NeuronicInputs(4)
        inputs.load_measures(torch.ones(4))

        lenient = CompAENeuron("0", 0.1, 4, weight_init=constant_weights(0.0))
        assert lenient.compute_em(inputs).item() == 0.0

        strict = CompAENeuron("1", 0.1, 4, weight_init=constant_weights(0.0), policy=raise_policy)
        with pytest.raises(DegenerateNormalization):
            strict.compute_em(inputs)

    def test_export_weights_is_row_major(self):
        neuron = CompAENeuron("0", 0.1, 4, weight_init=lambda n: torch.arange(n, dtype=torch.float32))
        assert neuron.export_weights() == [[0.0, 1.0], [2.0, 3.0]]


class TestEndToEndScenario:
    """1 neuron, 4 inputs, weights 0.25, learning rate 0.1, image [1, 0, 0, 0]."""

    def test_prediction_phase(self, single_neuron_network):
        network = single_neuron_network
        load_grid(network, [1.0, 0.0, 0.0, 0.0])
        network.run_prediction_phase()

        neuron = network.neurons()[0]
        assert neuron.current_activation.item() == pytest.approx(0.25)
        assert network.weight_holder.total().item() == pytest.approx(0.25)
        for pixel in network.inputs:
            assert pixel.accumulated_prediction() == pytest.approx(0.0625)
        assert network.inputs[0].reconstruction(network.weight_holder) == pytest.approx(0.25)

    def test_error_and_learning(self, single_neuron_network):
        network = single_neuron_network
        load_grid(network, [1.0, 0.0, 0.0, 0.0])
        network.perform_adjustment()

        assert network.inputs[0].error() == pytest.approx(-0.75)
        assert network.inputs[1].error() == pytest.approx(0.25)

        weights = network.neurons()[0].weights
        assert weights[0].item() == pytest.approx(0.325)
        assert weights[1:].tolist() == pytest.approx([0.225, 0.225, 0.225])

    def test_load_order_does_not_matter(self, single_neuron_network):
        network = single_neuron_network
        network.load_pixel(1, 1, 0.0)
        network.load_pixel(0, 1, 0.0)
        network.load_pixel(1, 0, 0.0)
        network.load_pixel(0, 0, 1.0)
        network.perform_adjustment()

        assert network.neurons()[0].weights[0].item() == pytest.approx(0.325)

    def test_consecutive_pixel_loaded_images(self, single_neuron_network):
        """The holder is cleared once per image without calling begin_image()."""
        network = single_neuron_network
        load_grid(network, [1.0, 0.0, 0.0, 0.0])
        first = network.perform_adjustment()

        load_grid(network, [1.0, 0.0, 0.0, 0.0])
        second = network.perform_adjustment()

        # weights after the first step sum to 1.0, so em = 0.325 / 1.0
        assert first.total == pytest.approx(0.25)
        assert second.total == pytest.approx(0.325)
        assert network.inputs.accumulated_predictions.tolist() == pytest.approx(
            [0.325 * 0.325] + [0.325 * 0.225] * 3
        )

    def test_load_image_matches_load_pixel(self, single_neuron_network):
        network = single_neuron_network
        network.load_image([[1.0, 0.0], [0.0, 0.0]])
        stats = network.perform_adjustment()

        assert stats.total == pytest.approx(0.25)
        assert stats.mean_abs_error == pytest.approx((0.75 + 3 * 0.25) / 4)
        assert network.neurons()[0].weights[0].item() == pytest.approx(0.325)

    def test_single_neuron_reconstruction_is_its_weights(self, single_neuron_network):
        network = single_neuron_network
        network.load_image([[1.0, 0.0], [0.0, 0.0]])
        network.run_prediction_phase()

        activation = network.neurons()[0].current_activation.item()
        recon = network.reconstruction()
        assert recon.flatten().tolist() == pytest.approx([0.25] * 4)
        assert recon[0, 0].item() == pytest.approx(activation)


class TestCompAENetwork:
    """Test network orchestration, protocol and invariants."""

    def test_invalid_construction(self):
        with pytest.raises(ConfigurationError):
            CompAENetwork(learning_rate=0.1, num_neurons=0, side=2)
        with pytest.raises(ConfigurationError):
            CompAENetwork(learning_rate=0.1, num_neurons=1, side=0)
        with pytest.raises(ConfigurationError):
            CompAENetwork(learning_rate=0.0, num_neurons=1, side=2)

    def test_satisfies_image_network(self, single_neuron_network):
        assert isinstance(single_neuron_network, ImageNetwork)

    def test_shared_state(self):
        network = CompAENetwork(learning_rate=0.1, num_neurons=3, side=2)
        assert len(network.neurons()) == 3
        assert [n.name for n in network.neurons()] == ["0", "1", "2"]
        for neuron in network.neurons():
            assert neuron.weights.numel() == network.num_inputs
            assert neuron.policy is network.policy

    @pytest.mark.parametrize("x,y", [(2, 0), (0, 2), (-1, 0), (0, -1)])
    def test_pixel_out_of_range(self, single_neuron_network, x, y):
        with pytest.raises(PixelOutOfRangeError) as info:
            single_neuron_network.load_pixel(x, y, 0.5)
        assert isinstance(info.value, IndexError)

    def test_wrong_image_shape(self, single_neuron_network):
        with pytest.raises(ImageShapeError):
            single_neuron_network.load_image(torch.zeros(3, 3))
        with pytest.raises(ImageShapeError):
            single_neuron_network.load_image(torch.zeros(4, 1))
        with pytest.raises(ImageShapeError):
            single_neuron_network.load_image(torch.zeros(5))
        single_neuron_network.load_image(torch.zeros(4))

    def test_incomplete_image(self, single_neuron_network):
        network = single_neuron_network
        network.begin_image()
        network.load_pixel(0, 0, 1.0)
        with pytest.raises(IncompleteImageError) as info:
            network.perform_adjustment()
        assert info.value.missing == 3

    def test_read_only_image_does_not_leak_into_next(self, single_neuron_network):
        network = single_neuron_network
        load_grid(network, [1.0, 0.0, 0.0, 0.0])
        network.activations()
        network.winner()

        network.load_pixel(0, 0, 0.5)
        assert network.loaded.tolist() == [True, False, False, False]
        with pytest.raises(IncompleteImageError) as info:
            network.perform_adjustment()
        assert info.value.missing == 3

    def test_reloading_a_pixel_starts_a_new_image(self, single_neuron_network):
        network = single_neuron_network
        network.load_pixel(0, 0, 1.0)
        network.load_pixel(1, 0, 0.0)
        network.load_pixel(0, 0, 0.5)

        assert network.loaded.tolist() == [True, False, False, False]
        assert network.inputs[0].measure() == pytest.approx(0.5)

    def test_adjustment_needs_a_fresh_image(self, single_neuron_network):
        network = single_neuron_network
        with pytest.raises(IncompleteImageError):
            network.perform_adjustment()

        network.load_image(torch.ones(2, 2))
        network.perform_adjustment()
        with pytest.raises(IncompleteImageError):
            network.perform_adjustment()

    def test_begin_image_resets_state(self, single_neuron_network):
        network = single_neuron_network
        network.load_image([[1.0, 0.0], [0.0, 0.0]])
        network.perform_adjustment()
        assert network.weight_holder.total().item() > 0

        network.begin_image()
        assert network.weight_holder.total().item() == 0.0
        assert torch.all(network.inputs.accumulated_predictions == 0)
        assert not network.loaded.any()

    def test_persistent_accumulation_keeps_predictions(self):
        network = CompAENetwork(
            learning_rate=0.1, num_neurons=1, side=2,
            weight_init=constant_weights(0.25),
            policy=NormalizationPolicy(accumulation="persistent"),
        )
        network.load_image([[1.0, 0.0], [0.0, 0.0]])
        network.perform_adjustment()

        network.load_image([[1.0, 0.0], [0.0, 0.0]])
        assert network.weight_holder.total().item() == 0.0
        assert network.inputs.accumulated_predictions.tolist() == pytest.approx([0.0625] * 4)

    def test_unit_pooling(self):
        network = CompAENetwork(
            learning_rate=0.1, num_neurons=1, side=2,
            weight_init=constant_weights(0.25),
            policy=NormalizationPolicy(pooling="unit"),
        )
        network.load_image([[1.0, 0.0], [0.0, 0.0]])
        stats = network.perform_adjustment()

        # the step reports summed activations, not the unit normalizer
        assert stats.total == pytest.approx(0.25)
        # reconstruction 0.0625, error -0.9375, share 0.25 / 1.0
        assert network.inputs[0].error() == pytest.approx(-0.9375)
        assert network.neurons()[0].weights[0].item() == pytest.approx(0.25 + 0.9375 * 0.25 * 0.1)

    def test_accumulator_conservation(self, random_images):
        network = NetworkConfig(num_neurons=5, side=4, learning_rate=0.01, seed=3).build()
        for image in random_images:
            network.load_image(image)
            network.run_prediction_phase()
            activations = sum(n.current_activation.item() for n in network.neurons())
            assert network.weight_holder.total().item() == pytest.approx(activations, rel=1e-6)
            network.cache_errors()
            network.run_learning_phase()

    def test_weights_stay_non_negative(self, random_images):
        network = NetworkConfig(num_neurons=4, side=4, learning_rate=5.0, seed=11).build()
        for _ in range(3):
            for image in random_images:
                network.load_image(image)
                network.perform_adjustment()
                weights = network.weight_matrix()
                assert weights.shape == (4, 16)
                assert torch.all(weights >= 0)

    def test_clamp_saturates_at_zero(self):
        network = CompAENetwork(
            learning_rate=100.0, num_neurons=1, side=2,
            weight_init=constant_weights(0.25),
        )
        network.load_image([[1.0, 0.0], [0.0, 0.0]])
        network.perform_adjustment()

        weights = network.neurons()[0].weights
        # 0.25 - 0.25 * 100 would be -24.75
        assert weights[1:].tolist() == [0.0, 0.0, 0.0]
        assert weights[0].item() == pytest.approx(75.25)

        for _ in range(3):
            network.load_image([[1.0, 0.0], [0.0, 0.0]])
            network.perform_adjustment()
            assert torch.all(network.neurons()[0].weights == 0)

    def test_dead_network_under_zero_policy(self):
        network = CompAENetwork(
            learning_rate=0.1, num_neurons=2, side=2,
            weight_init=constant_weights(0.0),
        )
        network.load_image([[1.0, 0.5], [0.0, 0.0]])
        stats = network.perform_adjustment()

        assert stats.total == 0.0
        assert network.inputs.error().tolist() == pytest.approx([-1.0, -0.5, 0.0, 0.0])
        assert torch.all(network.weight_matrix() == 0)

    def test_degenerate_raises_under_raise_policy(self, raise_policy):
        dead = CompAENetwork(
            learning_rate=0.1, num_neurons=1, side=2,
            weight_init=constant_weights(0.0), policy=raise_policy,
        )
        dead.load_image(torch.ones(2, 2))
        with pytest.raises(DegenerateNormalization):
            dead.perform_adjustment()

        # Positive weights but a blank image gives a zero pooled total
        blank = CompAENetwork(
            learning_rate=0.1, num_neurons=1, side=2,
            weight_init=constant_weights(0.25), policy=raise_policy,
        )
        blank.load_image(torch.zeros(2, 2))
        with pytest.raises(DegenerateNormalization):
            blank.perform_adjustment()

    def test_deterministic_given_seed(self, random_images):
        first = NetworkConfig(num_neurons=3, side=4, learning_rate=0.05, seed=7).build()
        second = NetworkConfig(num_neurons=3, side=4, learning_rate=0.05, seed=7).build()

        for network in (first, second):
            for image in random_images:
                network.load_image(image)
                network.perform_adjustment()

        assert torch.equal(first.weight_matrix(), second.weight_matrix())

    def test_evaluation_path_mutates_nothing(self, random_images):
        network = NetworkConfig(num_neurons=3, side=4, seed=5).build()
        before = network.weight_matrix()

        network.load_image(random_images[0])
        activations = network.activations()

        assert activations.shape == (3,)
        assert network.winner() == int(activations.argmax())
        assert torch.equal(network.weight_matrix(), before)
        assert network.weight_holder.total().item() == 0.0

    def test_reconstruct_does_not_learn(self, random_images):
        network = NetworkConfig(num_neurons=3, side=4, seed=5).build()
        before = network.weight_matrix()

        recon = network.reconstruct(random_images[0])

        assert recon.shape == (4, 4)
        assert torch.equal(network.weight_matrix(), before)
        with pytest.raises(IncompleteImageError):
            network.perform_adjustment()

    def test_competing_neurons_share_learning(self):
        network = CompAENetwork(
            learning_rate=0.1, num_neurons=2, side=2,
            weight_init=sequence_sampler([0.5, 0.0, 0.0, 0.5], [0.0, 0.5, 0.5, 0.0]),
        )
        network.load_image([[1.0, 0.0], [0.0, 0.0]])
        network.run_prediction_phase()

        first, second = network.neurons()
        assert first.current_activation.item() == pytest.approx(0.5)
        assert second.current_activation.item() == 0.0
        assert network.weight_holder.total().item() == pytest.approx(0.5)

        network.cache_errors()
        network.run_learning_phase()
        # Only the active neuron moves: error at pixel 0 is 0.5 - 1.0
        assert first.weights.tolist() == pytest.approx([0.55, 0.0, 0.0, 0.45])
        assert second.weights.tolist() == pytest.approx([0.0, 0.5, 0.5, 0.0])

    def test_export_weights_shape(self):
        network = CompAENetwork(learning_rate=0.1, num_neurons=3, side=4)
        grids = network.export_weights()
        assert len(grids) == 3
        assert all(len(grid) == 4 and all(len(row) == 4 for row in grid) for grid in grids)

    def test_get_stats(self, single_neuron_network):
        stats = single_neuron_network.get_stats()
        assert stats['num_neurons'] == 1
        assert stats['weight_mean'] == pytest.approx(0.25)
        assert stats['neurons']['0']['weight_sum'] == pytest.approx(1.0)
