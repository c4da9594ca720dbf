"""
Example: Training CompAE Neurons on MNIST

Ten competing neurons learn label-free reconstructions of MNIST digits.
After training, each neuron is named after the digit it wins most often on
the training set, and test accuracy is the fraction of test digits whose
winning neuron carries the right name.

Run:
    python examples/train_mnist.py
"""

import torch
from compae import (
    NetworkConfig,
    TrainingConfig,
    CompAETrainer,
    NormalizationPolicy,
    WeightVisualizer,
    save_weights,
)

# Import MNIST utilities
from mnist_utils import load_mnist, print_dataset_info, MNIST_SIDE


def main():
    # === CONFIGURATION ===
    DEVICE = "cuda" if torch.cuda.is_available() else "cpu"

    # Architecture
    NUM_NEURONS = 10
    LEARNING_CONST = 0.001

    # Training
    EPOCHS = 10
    TRAINING_SET_LENGTH = 10000
    TEST_SET_LENGTH = 10000
    LOGGER_ON = True

    print(f"Using device: {DEVICE}")
    print(f"Architecture: {MNIST_SIDE}x{MNIST_SIDE} pixels → {NUM_NEURONS} competing neurons\n")

    # === DATA LOADING ===
    print("Loading MNIST...")
    train_img, train_lbl, test_img, test_lbl = load_mnist(
        data_root='./data',
        train_size=TRAINING_SET_LENGTH,
        test_size=TEST_SET_LENGTH
    )
    print_dataset_info({
        'train_images': train_img,
        'train_labels': train_lbl,
        'test_images': test_img,
        'test_labels': test_lbl,
    })

    # === MODEL INITIALIZATION ===
    network_config = NetworkConfig(
        num_neurons=NUM_NEURONS,
        side=MNIST_SIDE,
        learning_rate=LEARNING_CONST,
        policy=NormalizationPolicy(activation="weight_sum", accumulation="per_image"),
        device=DEVICE
    )
    network = network_config.build()
    training_config = TrainingConfig(epochs=EPOCHS, verbose=LOGGER_ON)

    # === TRAINING ===
    trainer = CompAETrainer(network, training_config)
    accuracy = trainer.take_metric(train_img, train_lbl, test_img, test_lbl)

    print(f"Model accuracy: {accuracy}")

    # === RESULTS ===
    summary = trainer.get_summary()
    for epoch_name, stats in summary.items():
        print(f"{epoch_name}: mean |error| {stats['mean_abs_error']:.4f} | "
              f"final total {stats['final_total']:.4f}")

    path = save_weights(network, training_config.output_path)
    print(f"\nSaved weights to {path}")

    # === VISUALIZATION ===
    print("\nGenerating plots...")
    trainer.plot_results()

    visualizer = WeightVisualizer(network, neuron_labels=trainer.neuron_labels)
    visualizer.plot_weights(title="Learned Weights")
    visualizer.plot_reconstruction(test_img[0], label=int(test_lbl[0]))

    import matplotlib.pyplot as plt
    plt.show()


if __name__ == "__main__":
    main()
